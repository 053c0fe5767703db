"""Unit tests for readiness predicates."""

from __future__ import annotations

import asyncio

import httpx
import pytest
from fakes import FakeCluster, make_tier

from stackdeck.deploy import readiness
from stackdeck.deploy.readiness import (
    HttpStatus,
    ReplicasReady,
    ResourceExists,
    TcpPortOpen,
    build_predicate,
)
from stackdeck.lib.errors import ProbeError, ResourceNotFoundError
from stackdeck.models.rollout import ReadinessSignal
from stackdeck.models.stack import ReadinessConfig, ReadinessType


class SignalCluster(FakeCluster):
    """Cluster that always reports the same readiness signal."""

    def __init__(self, signal: ReadinessSignal) -> None:
        super().__init__()
        self.signal = signal

    async def get_status(self, tier):  # type: ignore[no-untyped-def]
        return self.signal


@pytest.fixture
def mock_http(monkeypatch: pytest.MonkeyPatch):
    """Route HttpStatus requests through an httpx.MockTransport."""
    real_client = httpx.AsyncClient

    def install(handler):  # type: ignore[no-untyped-def]
        def factory(**kwargs):  # type: ignore[no-untyped-def]
            return real_client(transport=httpx.MockTransport(handler), **kwargs)

        monkeypatch.setattr(readiness.httpx, "AsyncClient", factory)

    return install


@pytest.mark.unit
class TestReplicasReady:
    """Tests for the replicas predicate."""

    @pytest.mark.asyncio
    async def test_defaults_to_desired_replicas(self) -> None:
        """Without a count, all desired replicas must be ready."""
        predicate = ReplicasReady()
        tier = make_tier("backend")

        partial = SignalCluster(ReadinessSignal(ready_replicas=2, desired_replicas=3))
        full = SignalCluster(ReadinessSignal(ready_replicas=3, desired_replicas=3))

        assert await predicate.check(tier, partial) is False
        assert await predicate.check(tier, full) is True

    @pytest.mark.asyncio
    async def test_explicit_count(self) -> None:
        """An explicit count overrides the desired replica count."""
        predicate = ReplicasReady(replicas=2)
        cluster = SignalCluster(ReadinessSignal(ready_replicas=2, desired_replicas=5))

        assert await predicate.check(make_tier("backend"), cluster) is True

    @pytest.mark.asyncio
    async def test_zero_desired_requires_one(self) -> None:
        """A workload reporting no desired replicas is not considered ready."""
        cluster = SignalCluster(ReadinessSignal(ready_replicas=0, desired_replicas=0))

        assert await ReplicasReady().check(make_tier("backend"), cluster) is False

    @pytest.mark.asyncio
    async def test_not_found_raises_probe_error(self) -> None:
        """A missing workload can never become ready."""
        cluster = FakeCluster(
            status_errors={"backend": ResourceNotFoundError("Deployment/backend")}
        )

        with pytest.raises(ProbeError, match="Deployment/backend"):
            await ReplicasReady().check(make_tier("backend"), cluster)


@pytest.mark.unit
class TestResourceExists:
    """Tests for the exists predicate."""

    @pytest.mark.asyncio
    async def test_exists(self) -> None:
        """Ready as soon as the resource exists."""
        cluster = SignalCluster(ReadinessSignal(exists=True))

        assert await ResourceExists().check(make_tier("config"), cluster) is True

    @pytest.mark.asyncio
    async def test_not_yet_visible(self) -> None:
        """Not ready while the API reports the resource as absent."""
        cluster = SignalCluster(ReadinessSignal(exists=False))

        assert await ResourceExists().check(make_tier("config"), cluster) is False


@pytest.mark.unit
class TestTcpPortOpen:
    """Tests for the tcp predicate."""

    @pytest.mark.asyncio
    async def test_open_port(self) -> None:
        """A listening socket satisfies the predicate."""

        async def handle(reader, writer):  # type: ignore[no-untyped-def]
            writer.close()

        server = await asyncio.start_server(handle, "127.0.0.1", 0)
        port = server.sockets[0].getsockname()[1]
        try:
            predicate = TcpPortOpen("127.0.0.1", port)
            assert await predicate.check(make_tier("database"), FakeCluster()) is True
        finally:
            server.close()
            await server.wait_closed()

    @pytest.mark.asyncio
    async def test_closed_port(self) -> None:
        """A refused connection means not ready, not an error."""
        server = await asyncio.start_server(lambda r, w: None, "127.0.0.1", 0)
        port = server.sockets[0].getsockname()[1]
        server.close()
        await server.wait_closed()

        predicate = TcpPortOpen("127.0.0.1", port)

        assert await predicate.check(make_tier("database"), FakeCluster()) is False


@pytest.mark.unit
class TestHttpStatus:
    """Tests for the http predicate."""

    @pytest.mark.asyncio
    async def test_expected_status(self, mock_http) -> None:  # type: ignore[no-untyped-def]
        """The expected status code means ready."""
        mock_http(lambda request: httpx.Response(200))

        predicate = HttpStatus("http://backend.local/healthz")

        assert await predicate.check(make_tier("backend"), FakeCluster()) is True

    @pytest.mark.asyncio
    async def test_other_status(self, mock_http) -> None:  # type: ignore[no-untyped-def]
        """Any other status code means not ready yet."""
        mock_http(lambda request: httpx.Response(503))

        predicate = HttpStatus("http://backend.local/healthz")

        assert await predicate.check(make_tier("backend"), FakeCluster()) is False

    @pytest.mark.asyncio
    async def test_connection_error(self, mock_http) -> None:  # type: ignore[no-untyped-def]
        """Transport errors mean not ready yet."""

        def refuse(request: httpx.Request) -> httpx.Response:
            raise httpx.ConnectError("connection refused", request=request)

        mock_http(refuse)

        predicate = HttpStatus("http://backend.local/healthz", expected_status=204)

        assert await predicate.check(make_tier("backend"), FakeCluster()) is False


@pytest.mark.unit
class TestBuildPredicate:
    """Tests for build_predicate."""

    def test_default_is_replicas(self) -> None:
        """Tiers without readiness configuration wait for replicas."""
        predicate = build_predicate(ReadinessConfig())

        assert isinstance(predicate, ReplicasReady)
        assert predicate.replicas is None

    def test_all_types(self) -> None:
        """Every readiness type maps to its predicate class."""
        assert isinstance(
            build_predicate(ReadinessConfig(type=ReadinessType.EXISTS)), ResourceExists
        )
        tcp = build_predicate(
            ReadinessConfig(type=ReadinessType.TCP, host="db", port=5432)
        )
        assert isinstance(tcp, TcpPortOpen)
        assert tcp.port == 5432
        http = build_predicate(
            ReadinessConfig(
                type=ReadinessType.HTTP, url="https://api/health", expected_status=204
            )
        )
        assert isinstance(http, HttpStatus)
        assert http.expected_status == 204
        assert "204" in http.description

    @pytest.mark.parametrize(
        ("readiness_type", "message"),
        [
            (ReadinessType.TCP, "host and port"),
            (ReadinessType.HTTP, "url"),
        ],
    )
    def test_unvalidated_config_missing_target(
        self, readiness_type: ReadinessType, message: str
    ) -> None:
        """Configs built without validation still fail cleanly."""
        config = ReadinessConfig.model_construct(type=readiness_type)

        with pytest.raises(ValueError, match=message):
            build_predicate(config)
