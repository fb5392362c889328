"""
Tests for the container runtime adapters — command builders, the
docker runtime, and the recording mock.
"""

import subprocess
from pathlib import Path
from unittest.mock import MagicMock, patch

import pytest

from ledgerstack.adapters.containers.commands import ComposeCommand, DockerCommand
from ledgerstack.adapters.containers.docker import DockerRuntime
from ledgerstack.adapters.mock import MockRuntime
from ledgerstack.core.errors import ExternalProcessError

# ── Command builders ─────────────────────────────────────────────────


class TestDockerCommand:
    def test_run(self):
        cmd = DockerCommand.run(
            "hyperledger/fabric-tools:2.4",
            ["peer", "channel", "list"],
            volumes=["dev_firefly_fabric:/etc/firefly"],
            env={"CORE_PEER_ADDRESS": "fabric_peer:7051"},
            platform="linux/amd64",
            network="dev_default",
        )
        assert cmd.argv() == [
            "docker", "run", "--rm",
            "-v", "dev_firefly_fabric:/etc/firefly",
            "-e", "CORE_PEER_ADDRESS=fabric_peer:7051",
            "--platform", "linux/amd64",
            "--network", "dev_default",
            "hyperledger/fabric-tools:2.4",
            "peer", "channel", "list",
        ]

    def test_copy_to_volume(self, tmp_path: Path):
        source = tmp_path / "genesis.json"
        cmd = DockerCommand.copy_to_volume("dev_geth", source, "genesis.json")
        argv = cmd.argv()
        assert f"{source.resolve()}:/source/genesis.json" in argv
        assert "dev_geth:/dest" in argv
        assert argv[-4:] == ["cp", "-R", "/source/genesis.json", "/dest/genesis.json"]

    def test_mkdir_in_volume(self):
        argv = DockerCommand.mkdir_in_volume("dev_dataexchange_0", "/peer-certs").argv()
        assert argv[-3:] == ["mkdir", "-p", "/dest/peer-certs"]

    def test_simple_commands(self):
        assert DockerCommand.pull("ipfs/go-ipfs").argv() == ["docker", "pull", "ipfs/go-ipfs"]
        assert DockerCommand.volume_remove("v").argv() == ["docker", "volume", "rm", "-f", "v"]
        assert DockerCommand.copy_from_container("c", "/a", Path("/tmp/b")).argv() == [
            "docker", "cp", "c:/a", "/tmp/b",
        ]


class TestComposeCommand:
    def test_up(self):
        argv = ComposeCommand("dev", Path("/s/dev/runtime/docker-compose.yml")).up().argv()
        assert argv == [
            "docker", "compose", "-p", "dev", "-f", "/s/dev/runtime/docker-compose.yml", "up", "-d",
        ]

    def test_down_volumes(self):
        assert ComposeCommand("dev", Path("c.yml")).down(volumes=True).argv()[-2:] == ["down", "--volumes"]
        assert ComposeCommand("dev", Path("c.yml")).down().argv()[-1] == "down"

    def test_logs_tail(self):
        assert ComposeCommand("dev", Path("c.yml")).logs(50).argv()[-4:] == [
            "logs", "--no-color", "--tail", "50",
        ]


# ── Docker runtime ───────────────────────────────────────────────────


def _completed(returncode: int = 0, stdout: str = "", stderr: str = "") -> MagicMock:
    result = MagicMock()
    result.returncode = returncode
    result.stdout = stdout
    result.stderr = stderr
    return result


class TestDockerRuntime:
    def test_success_returns_stdout(self):
        with patch("ledgerstack.adapters.containers.docker.subprocess.run",
                   return_value=_completed(stdout="NAME  STATUS\n")) as run:
            output = DockerRuntime().compose_ps("dev", Path("c.yml"))
        assert output == "NAME  STATUS\n"
        argv = run.call_args[0][0]
        assert argv[:2] == ["docker", "compose"]
        assert run.call_args[1]["capture_output"] is True

    def test_nonzero_exit(self):
        with patch("ledgerstack.adapters.containers.docker.subprocess.run",
                   return_value=_completed(returncode=1, stderr="no such image")):
            with pytest.raises(ExternalProcessError, match="no such image") as exc:
                DockerRuntime().pull_image("nope")
        assert exc.value.returncode == 1
        assert exc.value.argv == ["docker", "pull", "nope"]

    def test_missing_cli(self):
        with patch("ledgerstack.adapters.containers.docker.subprocess.run",
                   side_effect=FileNotFoundError("docker")):
            with pytest.raises(ExternalProcessError, match="docker CLI not found"):
                DockerRuntime().create_volume("v")

    def test_timeout(self):
        with patch("ledgerstack.adapters.containers.docker.subprocess.run",
                   side_effect=subprocess.TimeoutExpired(["docker"], 600)):
            with pytest.raises(ExternalProcessError, match="timed out"):
                DockerRuntime().compose_up("dev", Path("c.yml"))

    def test_available(self):
        with patch("ledgerstack.adapters.containers.docker.shutil.which", return_value=None):
            assert DockerRuntime().is_available() is False


# ── Mock runtime ─────────────────────────────────────────────────────


class TestMockRuntime:
    def test_records_calls(self):
        mock = MockRuntime()
        mock.compose_up("dev", Path("c.yml"))
        mock.remove_volume("dev_geth")
        assert mock.call_count == 2
        assert [c.operation for c in mock.call_log] == ["compose_up", "remove_volume"]
        assert mock.calls("remove_volume")[0].args == ("dev_geth",)

    def test_failure(self):
        mock = MockRuntime()
        mock.set_failure("compose_up", "boom")
        with pytest.raises(ExternalProcessError, match="mock compose_up: boom"):
            mock.compose_up("dev", Path("c.yml"))
        assert mock.call_count == 1

    def test_output(self):
        mock = MockRuntime(default_output="ok")
        mock.set_output("compose_logs", "line 1\n")
        assert mock.compose_logs("dev", Path("c.yml"), tail=5) == "line 1\n"
        assert mock.compose_ps("dev", Path("c.yml")) == "ok"

    def test_container_files(self, tmp_path: Path):
        mock = MockRuntime()
        mock.set_container_file("/a.json", "{}")
        mock.copy_from_container("c", "/a.json", tmp_path / "out" / "a.json")
        assert (tmp_path / "out" / "a.json").read_text() == "{}"
        mock.copy_from_container("c", "/missing", tmp_path / "missing")
        assert not (tmp_path / "missing").exists()

    def test_reset(self):
        mock = MockRuntime()
        mock.set_failure("pull_image")
        with pytest.raises(ExternalProcessError):
            mock.pull_image("x")
        mock.reset()
        assert mock.call_count == 0
        assert mock.pull_image("x") == ""
