"""e2etests - End-to-end test sequences for managed Kubernetes guest clusters.

Example:

    from injector import Injector
    from e2etests import E2EModule, ClusterState, load_config, resolve_suite, resolve_provider

    raw = load_config()
    injector = Injector([E2EModule(resolve_suite(raw), resolve_provider(raw))])
    await injector.get(ClusterState).run()
"""

from loguru import logger

from e2etests.basicapp import BasicApp
from e2etests.clusterstate import ClusterState
from e2etests.config import SuiteConfig, load_config, resolve_provider, resolve_suite
from e2etests.errors import E2EError, ErrorKind, classify
from e2etests.ipam import IPAM, SubnetAllocations, overlaps
from e2etests.lifecycle import SequenceResult
from e2etests.loadtest import LoadTest
from e2etests.module import E2EModule
from e2etests.poll import (
    LONG,
    SHORT,
    UPDATE,
    Backoff,
    Done,
    Outcome,
    PermanentFailure,
    PermanentSuccess,
    Retry,
    WaitResult,
    poll,
    wait_until,
)
from e2etests.scaling import Scaling
from e2etests.update import Update

logger.disable("e2etests")

__all__ = [
    "ClusterState",
    "Scaling",
    "Update",
    "IPAM",
    "LoadTest",
    "BasicApp",
    "E2EModule",
    "SuiteConfig",
    "load_config",
    "resolve_suite",
    "resolve_provider",
    "E2EError",
    "ErrorKind",
    "classify",
    "SubnetAllocations",
    "overlaps",
    "SequenceResult",
    "Backoff",
    "SHORT",
    "LONG",
    "UPDATE",
    "Retry",
    "Done",
    "PermanentSuccess",
    "PermanentFailure",
    "Outcome",
    "WaitResult",
    "poll",
    "wait_until",
]
