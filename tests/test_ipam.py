from __future__ import annotations

import pytest

from conftest import FakeKube
from e2etests.errors import ErrorKind, InvalidConfigError, NotFoundError, OverlapViolationError, StepError, classify
from e2etests.ipam import IPAM, ChartClusterFactory, SubnetAllocations, overlaps, parse_cidr
from e2etests.lifecycle import SequenceResult

pytestmark = [pytest.mark.unit, pytest.mark.xdist_group("unit")]


class TestOverlaps:
    @pytest.mark.parametrize(
        ("a", "b", "expected"),
        [
            ("10.1.0.0/16", "10.1.0.0/16", True),
            ("10.1.0.0/16", "10.1.2.0/24", True),
            ("10.0.0.0/8", "10.1.0.0/16", True),
            ("10.1.0.0/16", "10.2.0.0/16", False),
            ("10.1.0.0/24", "10.1.1.0/24", False),
            ("192.168.0.0/16", "10.0.0.0/8", False),
            ("fd00::/48", "fd00:0:0:1::/64", True),
            ("10.0.0.0/8", "fd00::/48", False),
        ],
    )
    def test_cases(self, a: str, b: str, expected: bool):
        assert overlaps(a, b) is expected

    @pytest.mark.parametrize(("a", "b"), [("10.0.0.0/8", "10.1.0.0/16"), ("10.1.0.0/16", "10.2.0.0/16")])
    def test_symmetric(self, a: str, b: str):
        assert overlaps(a, b) == overlaps(b, a)

    def test_invalid_cidr(self):
        with pytest.raises(InvalidConfigError):
            parse_cidr("10.0.0.0/33")


class TestSubnetAllocations:
    def test_disjoint_subnets_are_recorded(self):
        allocations = SubnetAllocations()
        allocations.add("c0", "10.1.0.0/16")
        allocations.add("c1", "10.2.0.0/16")
        allocations.add("c2", "10.3.0.0/16")

        assert len(allocations) == 3
        assert list(allocations) == ["c0", "c1", "c2"]

    def test_overlap_names_both_clusters(self):
        allocations = SubnetAllocations()
        allocations.add("c0", "10.0.0.0/8")

        with pytest.raises(OverlapViolationError) as exc_info:
            allocations.add("c1", "10.5.0.0/16")

        err = exc_info.value
        assert (err.cluster, err.subnet) == ("c1", "10.5.0.0/16")
        assert (err.other_cluster, err.other_subnet) == ("c0", "10.0.0.0/8")
        assert "c1" not in allocations

    def test_reallocation_after_remove(self):
        allocations = SubnetAllocations()
        allocations.add("c0", "10.1.0.0/16")
        allocations.add("c1", "10.2.0.0/16")

        assert allocations.remove("c1") == "10.2.0.0/16"
        allocations.add("c3", "10.2.0.0/16")

        assert dict(allocations.items()) == {"c0": "10.1.0.0/16", "c3": "10.2.0.0/16"}

    def test_same_cluster_is_not_compared_with_itself(self):
        allocations = SubnetAllocations()
        allocations.add("c0", "10.1.0.0/16")
        allocations.add("c0", "10.1.0.0/16")
        assert len(allocations) == 1


class FakeGuest:
    def __init__(self, cluster_id: str, events: list[str]) -> None:
        self.cluster_id = cluster_id
        self._events = events

    async def wait_for_guest_ready(self) -> None:
        self._events.append(f"ready {self.cluster_id}")

    async def wait_for_api_down(self) -> None:
        self._events.append(f"down {self.cluster_id}")

    def close(self) -> None:
        self._events.append(f"close {self.cluster_id}")


class FakeFactory:
    def __init__(self, subnets: dict[str, str], *, fail_create: str | None = None) -> None:
        self.subnets = subnets
        self.fail_create = fail_create
        self.events: list[str] = []
        self.deleted: list[str] = []

    async def create_cluster(self, cluster_id: str) -> None:
        self.events.append(f"create {cluster_id}")
        if cluster_id == self.fail_create:
            raise RuntimeError(f"chart install failed for {cluster_id}")

    async def delete_cluster(self, cluster_id: str) -> None:
        self.events.append(f"delete {cluster_id}")
        self.deleted.append(cluster_id)

    async def subnet(self, cluster_id: str) -> str:
        return self.subnets[cluster_id]

    async def guest(self, cluster_id: str) -> FakeGuest:
        return FakeGuest(cluster_id, self.events)


DISJOINT = {
    "h-cluster0": "10.1.0.0/16",
    "h-cluster1": "10.2.0.0/16",
    "h-cluster2": "10.3.0.0/16",
    "h-cluster3": "10.2.0.0/16",
}


class TestIPAMSequence:
    @pytest.mark.asyncio
    async def test_passes_and_deletes_each_cluster_once(self):
        factory = FakeFactory(dict(DISJOINT))

        result = await IPAM(factory, "h").run()

        assert result is SequenceResult.PASSED
        assert sorted(factory.deleted) == ["h-cluster0", "h-cluster1", "h-cluster2", "h-cluster3"]
        assert factory.events.index("delete h-cluster1") < factory.events.index("create h-cluster3")
        assert factory.events.index("create h-cluster3") < factory.events.index("down h-cluster1")
        assert factory.events.index("down h-cluster1") < factory.events.index("ready h-cluster3")
        closed = sorted(e for e in factory.events if e.startswith("close "))
        assert closed == ["close h-cluster0", "close h-cluster1", "close h-cluster2", "close h-cluster3"]

    @pytest.mark.asyncio
    async def test_overlap_with_fourth_cluster_fails_and_cleans_up(self):
        subnets = dict(DISJOINT, **{"h-cluster3": "10.3.128.0/17"})
        factory = FakeFactory(subnets)

        with pytest.raises(StepError) as exc_info:
            await IPAM(factory, "h").run()

        assert classify(exc_info.value) is ErrorKind.OVERLAP_VIOLATION
        cause = exc_info.value.__cause__
        assert isinstance(cause, OverlapViolationError)
        assert {cause.cluster, cause.other_cluster} == {"h-cluster3", "h-cluster2"}
        assert sorted(factory.deleted) == ["h-cluster0", "h-cluster1", "h-cluster2", "h-cluster3"]
        assert factory.events.count("close h-cluster3") == 1
        assert factory.events.count("close h-cluster1") == 1

    @pytest.mark.asyncio
    async def test_overlap_among_initial_clusters(self):
        subnets = dict(DISJOINT, **{"h-cluster1": "10.1.0.0/16"})
        factory = FakeFactory(subnets)

        with pytest.raises(StepError) as exc_info:
            await IPAM(factory, "h").run()

        assert classify(exc_info.value) is ErrorKind.OVERLAP_VIOLATION
        assert "create h-cluster3" not in factory.events
        assert sorted(factory.deleted) == ["h-cluster0", "h-cluster1", "h-cluster2"]

    @pytest.mark.asyncio
    async def test_failed_create_still_releases_it(self):
        factory = FakeFactory(dict(DISJOINT), fail_create="h-cluster1")

        with pytest.raises(StepError):
            await IPAM(factory, "h").run()

        assert sorted(factory.deleted) == ["h-cluster0", "h-cluster1"]

    def test_cluster_names(self):
        assert IPAM(FakeFactory({}), "ci").clusters == [f"ci-cluster{i}" for i in range(4)]

    def test_requires_host_cluster_name(self):
        with pytest.raises(InvalidConfigError):
            IPAM(FakeFactory({}), "")


class FakeInstaller:
    def __init__(self) -> None:
        self.installed: list[tuple[str, str, str, dict]] = []
        self.deleted: list[tuple[str, str | None]] = []

    async def install_chart(
        self, chart: str, namespace: str, values: dict | None = None, *, release: str | None = None,
    ) -> None:
        self.installed.append((release or chart, chart, namespace, values or {}))

    async def delete_release(self, release: str, namespace: str | None = None) -> None:
        self.deleted.append((release, namespace))


class TestChartClusterFactory:
    @pytest.mark.asyncio
    async def test_create_and_delete(self, kube: FakeKube):
        installer = FakeInstaller()
        factory = ChartClusterFactory(installer, kube, common_domain="example.com", values={"region": "eu"})  # type: ignore[arg-type]

        await factory.create_cluster("h-cluster0")
        await factory.delete_cluster("h-cluster0")

        release, chart, namespace, values = installer.installed[0]
        assert (release, chart, namespace) == ("h-cluster0", "apiextensions-aws-config-e2e", "h-cluster0")
        assert values == {"region": "eu", "clusterName": "h-cluster0", "commonDomain": "example.com"}
        assert installer.deleted == [("h-cluster0", "h-cluster0")]

    @pytest.mark.asyncio
    async def test_subnet_read_from_status(self, kube: FakeKube):
        kube.objects[("awsconfigs", "h-cluster0")] = {"status": {"cluster": {"network": {"cidr": "10.1.0.0/16"}}}}
        factory = ChartClusterFactory(FakeInstaller(), kube, common_domain="example.com")  # type: ignore[arg-type]

        assert await factory.subnet("h-cluster0") == "10.1.0.0/16"

    @pytest.mark.asyncio
    async def test_missing_subnet(self, kube: FakeKube):
        kube.objects[("awsconfigs", "h-cluster0")] = {"status": {}}
        factory = ChartClusterFactory(FakeInstaller(), kube, common_domain="example.com")  # type: ignore[arg-type]

        with pytest.raises(NotFoundError):
            await factory.subnet("h-cluster0")

    def test_requires_common_domain(self, kube: FakeKube):
        with pytest.raises(InvalidConfigError):
            ChartClusterFactory(FakeInstaller(), kube, common_domain="")  # type: ignore[arg-type]

