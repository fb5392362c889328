"""
Docker runtime — runs docker / docker compose as subprocesses.

Commands are built by ``commands.py``; this module only executes them
and turns a non-zero exit into ExternalProcessError.
"""

from __future__ import annotations

import logging
import shutil
import subprocess
from collections.abc import Iterable, Mapping
from pathlib import Path

from ledgerstack.adapters.base import ContainerRuntime
from ledgerstack.adapters.containers.commands import ComposeCommand, DockerCommand
from ledgerstack.core.errors import ExternalProcessError

logger = logging.getLogger(__name__)

# Pulls and first-time `up` can be slow on a cold cache
COMPOSE_TIMEOUT = 600
DOCKER_TIMEOUT = 300


class DockerRuntime(ContainerRuntime):
    """Container runtime backed by the docker CLI."""

    @property
    def name(self) -> str:
        return "docker"

    def is_available(self) -> bool:
        return shutil.which("docker") is not None

    # ── Compose ─────────────────────────────────────────────────

    def compose_up(self, project: str, compose_file: Path) -> str:
        return self._execute(ComposeCommand(project, compose_file).up(), COMPOSE_TIMEOUT)

    def compose_stop(self, project: str, compose_file: Path) -> str:
        return self._execute(ComposeCommand(project, compose_file).stop(), COMPOSE_TIMEOUT)

    def compose_down(self, project: str, compose_file: Path, volumes: bool = False) -> str:
        return self._execute(
            ComposeCommand(project, compose_file).down(volumes=volumes), COMPOSE_TIMEOUT
        )

    def compose_ps(self, project: str, compose_file: Path) -> str:
        return self._execute(ComposeCommand(project, compose_file).ps())

    def compose_logs(self, project: str, compose_file: Path, tail: int | None = None) -> str:
        return self._execute(ComposeCommand(project, compose_file).logs(tail))

    # ── Images / containers / volumes ───────────────────────────

    def pull_image(self, image: str) -> str:
        return self._execute(DockerCommand.pull(image), COMPOSE_TIMEOUT)

    def run(
        self,
        image: str,
        command: Iterable[str] = (),
        *,
        volumes: Iterable[str] = (),
        entrypoint: str | None = None,
        platform: str | None = None,
        workdir: str | None = None,
        env: Mapping[str, str] | None = None,
        network: str | None = None,
    ) -> str:
        cmd = DockerCommand.run(
            image,
            command,
            volumes=volumes,
            entrypoint=entrypoint,
            platform=platform,
            workdir=workdir,
            env=env,
            network=network,
        )
        return self._execute(cmd)

    def copy_to_volume(self, volume: str, source: Path, dest: str) -> None:
        self._execute(DockerCommand.copy_to_volume(volume, source, dest))

    def mkdir_in_volume(self, volume: str, directory: str) -> None:
        self._execute(DockerCommand.mkdir_in_volume(volume, directory))

    def copy_from_container(self, container: str, source: str, dest: Path) -> None:
        self._execute(DockerCommand.copy_from_container(container, source, dest))

    def create_volume(self, name: str) -> None:
        self._execute(DockerCommand.volume_create(name))

    def remove_volume(self, name: str) -> None:
        self._execute(DockerCommand.volume_remove(name))

    # ── Internal ────────────────────────────────────────────────

    def _execute(self, command: DockerCommand | ComposeCommand, timeout: int = DOCKER_TIMEOUT) -> str:
        """Run one command; raise ExternalProcessError on failure."""
        argv = command.argv()
        logger.debug("exec: %s", " ".join(argv))
        try:
            result = subprocess.run(
                argv,
                capture_output=True,
                text=True,
                timeout=timeout,
            )
        except FileNotFoundError as e:
            raise ExternalProcessError(argv, 127, "docker CLI not found on PATH") from e
        except subprocess.TimeoutExpired as e:
            raise ExternalProcessError(argv, -1, f"timed out after {timeout}s") from e

        if result.returncode != 0:
            raise ExternalProcessError(argv, result.returncode, result.stderr)
        return result.stdout
