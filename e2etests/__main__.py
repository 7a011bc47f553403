"""Command-line runner.

    python -m e2etests clusterstate scaling --provider aws
    e2etests update --project-dir ./ci --log-level DEBUG

Exits 0 when every sequence passed or was skipped, 1 when one failed and 2
when the configuration is invalid.
"""

from __future__ import annotations

import argparse
import asyncio
import sys
from pathlib import Path

from injector import Injector
from loguru import logger

from e2etests.basicapp import BasicApp
from e2etests.clusterstate import ClusterState
from e2etests.config import load_config, resolve_provider, resolve_suite
from e2etests.errors import E2EError, classify
from e2etests.ipam import IPAM
from e2etests.lifecycle import SequenceResult
from e2etests.loadtest import LoadTest
from e2etests.module import E2EModule
from e2etests.observability import LogConfig, setup_logging, teardown_logging
from e2etests.scaling import Scaling
from e2etests.update import Update

type Sequence = ClusterState | Scaling | Update | IPAM | LoadTest | BasicApp

SEQUENCES: dict[str, type[Sequence]] = {
    "clusterstate": ClusterState,
    "scaling": Scaling,
    "update": Update,
    "ipam": IPAM,
    "loadtest": LoadTest,
    "basicapp": BasicApp,
}

log = logger.bind(component="runner")


async def main(module: E2EModule, sequences: list[tuple[str, Sequence]]) -> bool:
    """Run the sequences in order. Stops at the first failure."""
    try:
        for name, sequence in sequences:
            log.info("Running {name}", name=name)
            try:
                result = await sequence.run()
            except Exception as e:
                log.error("{name} failed ({kind}): {e}", name=name, kind=classify(e).value, e=e)
                return False
            if result is SequenceResult.SKIPPED:
                log.warning("{name} skipped", name=name)
            else:
                log.info("{name} passed", name=name)
        return True
    finally:
        await module.aclose()


def cli() -> None:
    parser = argparse.ArgumentParser(description="End-to-end tests for guest clusters")
    parser.add_argument("sequences", nargs="+", choices=list(SEQUENCES))
    parser.add_argument("--provider", type=str, default=None, help="Name of the [providers.<name>] table")
    parser.add_argument("--project-dir", type=Path, default=None)
    parser.add_argument("--config", type=Path, default=None, help="Global defaults file")
    parser.add_argument("--log-level", type=str, default="INFO")
    parser.add_argument("--log-dir", type=Path, default=Path(".e2etests/logs"))
    parser.add_argument("--log-json", action="store_true", help="Write the run log as JSON lines")
    args = parser.parse_args()

    handler_ids = setup_logging(LogConfig(level=args.log_level.upper(), directory=args.log_dir, json=args.log_json))
    try:
        raw = load_config(project_dir=args.project_dir, global_path=args.config)
        module: E2EModule | None = None
        try:
            suite = resolve_suite(raw)
            provider_config = resolve_provider(raw, args.provider)
            module = E2EModule(suite, provider_config)
            injector = Injector([module])
            sequences = [(name, injector.get(SEQUENCES[name])) for name in args.sequences]
        except E2EError as e:
            log.error("Invalid configuration: {e}", e=e)
            if module is not None:
                asyncio.run(module.aclose())
            sys.exit(2)

        ok = asyncio.run(main(module, sequences))
    finally:
        teardown_logging(handler_ids)

    sys.exit(0 if ok else 1)


if __name__ == "__main__":
    cli()
