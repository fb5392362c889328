"""
Tests for port allocation, the pre-flight port check and the readiness prober.
"""

import socket

import pytest

from ledgerstack.core.errors import PortUnavailableError, ReadinessTimeoutError
from ledgerstack.core.models.stack import Member, Stack
from ledgerstack.core.reliability.readiness import wait_for_port
from ledgerstack.core.services.ports import (
    allocate_ports,
    check_port_available,
    check_ports_available,
    stack_ports,
)


def _stack(**kwargs) -> Stack:
    members = [
        Member(
            id=str(i),
            index=i,
            address=f"0x{i:040x}",
            ports=allocate_ports(5100, 5000, i, token_providers=1),
            external=kwargs.pop(f"external_{i}", False),
        )
        for i in range(kwargs.pop("count", 2))
    ]
    return Stack(name="dev", members=members, **kwargs)


# ── Allocation ──────────────────────────────────────────────────────


class TestAllocatePorts:
    def test_first_member_block(self):
        ports = allocate_ports(5100, 5000, 0, token_providers=1)
        assert ports.firefly == 5000
        assert ports.admin == 5101
        assert ports.connector == 5102
        assert ports.ui == 5103
        assert ports.database == 5104
        assert ports.dataexchange == 5105
        assert ports.ipfs_api == 5106
        assert ports.ipfs_gateway == 5107
        assert ports.metrics is None
        assert ports.tokens == [5108]

    def test_second_member_is_one_block_up(self):
        ports = allocate_ports(5100, 5000, 1, token_providers=1)
        assert ports.firefly == 5001
        assert ports.admin == 5201
        assert ports.tokens == [5208]

    def test_metrics_comes_before_tokens(self):
        ports = allocate_ports(5100, 5000, 0, metrics=True, token_providers=2)
        assert ports.metrics == 5108
        assert ports.tokens == [5109, 5110]

    def test_blocks_never_overlap(self):
        seen: set[int] = set()
        for index in range(5):
            ports = allocate_ports(5100, 5000, index, metrics=True, token_providers=3)
            block = {
                ports.admin, ports.connector, ports.ui, ports.database,
                ports.dataexchange, ports.ipfs_api, ports.ipfs_gateway,
                ports.metrics, *ports.tokens,
            }
            assert not (block & seen)
            seen |= block

    def test_pure(self):
        assert allocate_ports(6000, 7000, 3, token_providers=2) == allocate_ports(
            6000, 7000, 3, token_providers=2
        )


class TestStackPorts:
    def test_blockchain_port_first(self):
        ports = stack_ports(_stack())
        assert ports[0] == 5100

    def test_includes_every_member(self):
        ports = stack_ports(_stack())
        assert 5000 in ports and 5001 in ports
        assert 5101 in ports and 5201 in ports
        assert 5108 in ports and 5208 in ports

    def test_external_member_skips_core_ports(self):
        ports = stack_ports(_stack(external_0=True))
        assert 5000 not in ports
        assert 5101 not in ports
        # its supporting services still run in docker
        assert 5102 in ports
        assert 5105 in ports

    def test_prometheus_port_when_enabled(self):
        ports = stack_ports(_stack(prometheus_enabled=True, exposed_prometheus_port=9191))
        assert ports[-1] == 9191


# ── Pre-flight check ────────────────────────────────────────────────


class TestCheckPorts:
    def test_all_free(self):
        check_ports_available([1, 2, 3], probe=lambda port: True)

    def test_first_busy_port_reported(self):
        busy = {2, 3}
        with pytest.raises(PortUnavailableError) as exc:
            check_ports_available([1, 2, 3], probe=lambda port: port not in busy)
        assert exc.value.port == 2
        assert "port 2 is unavailable" in str(exc.value)

    def test_probe_stops_at_first_failure(self):
        probed = []

        def probe(port):
            probed.append(port)
            return port != 2

        with pytest.raises(PortUnavailableError):
            check_ports_available([1, 2, 3], probe=probe)
        assert probed == [1, 2]

    def test_real_probe_sees_listening_socket(self):
        with socket.socket(socket.AF_INET, socket.SOCK_STREAM) as server:
            server.bind(("127.0.0.1", 0))
            server.listen(1)
            port = server.getsockname()[1]
            assert check_port_available(port) is False

    def test_real_probe_free_port(self):
        with socket.socket(socket.AF_INET, socket.SOCK_STREAM) as s:
            s.bind(("127.0.0.1", 0))
            port = s.getsockname()[1]
        # socket closed: nothing listens there now
        assert check_port_available(port) is True


# ── Readiness ───────────────────────────────────────────────────────


class TestWaitForPort:
    def test_returns_successful_attempt(self):
        answers = iter([False, False, True])
        sleeps = []
        attempt = wait_for_port(
            5000, retries=5, period=0.25,
            probe=lambda port: next(answers),
            sleep=sleeps.append,
        )
        assert attempt == 3
        assert sleeps == [0.25, 0.25, 0.25]

    def test_sleeps_before_first_probe(self):
        events = []
        wait_for_port(
            5000, retries=1, period=1.0,
            probe=lambda port: events.append("probe") or True,
            sleep=lambda s: events.append("sleep"),
        )
        assert events == ["sleep", "probe"]

    def test_timeout(self):
        with pytest.raises(ReadinessTimeoutError) as exc:
            wait_for_port(5000, retries=3, period=0, probe=lambda port: False, sleep=lambda s: None)
        assert "firefly to start on port 5000" in str(exc.value)
        assert "was never available" in str(exc.value)

    def test_timeout_elapsed_matches_budget(self):
        with socket.socket(socket.AF_INET, socket.SOCK_STREAM) as s:
            s.bind(("127.0.0.1", 0))
            port = s.getsockname()[1]

        with pytest.raises(ReadinessTimeoutError) as exc:
            wait_for_port(port, retries=3, period=0.2)
        # retries x period, give or take one period
        assert abs(exc.value.elapsed - 0.6) <= 0.2

    def test_custom_target(self):
        with pytest.raises(ReadinessTimeoutError) as exc:
            wait_for_port(
                1, retries=1, period=0, probe=lambda port: False,
                target="the admin API", sleep=lambda s: None,
            )
        assert exc.value.target == "the admin API"
