"""
Mock runtime — records every call instead of touching docker.

Used by tests and by the CLI ``--mock`` flag.  Individual operations
can be made to fail to exercise error paths.
"""

from __future__ import annotations

from collections.abc import Iterable, Mapping
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any

from ledgerstack.adapters.base import ContainerRuntime
from ledgerstack.core.errors import ExternalProcessError


@dataclass
class RuntimeCall:
    """One recorded runtime invocation."""

    operation: str
    args: tuple[Any, ...] = ()
    kwargs: dict[str, Any] = field(default_factory=dict)


class MockRuntime(ContainerRuntime):
    """In-memory container runtime."""

    def __init__(self, available: bool = True, default_output: str = ""):
        self._available = available
        self._default_output = default_output
        self._failures: dict[str, str] = {}
        self._outputs: dict[str, str] = {}
        self._container_files: dict[str, bytes] = {}
        self._call_log: list[RuntimeCall] = []

    @property
    def name(self) -> str:
        return "mock"

    @property
    def call_log(self) -> list[RuntimeCall]:
        return self._call_log

    @property
    def call_count(self) -> int:
        return len(self._call_log)

    def calls(self, operation: str) -> list[RuntimeCall]:
        """Recorded calls of one operation, in order."""
        return [c for c in self._call_log if c.operation == operation]

    def is_available(self) -> bool:
        return self._available

    def set_failure(self, operation: str, error: str = "Mock failure") -> None:
        """Make every later call of ``operation`` raise ExternalProcessError."""
        self._failures[operation] = error

    def clear_failures(self) -> None:
        self._failures.clear()

    def set_output(self, operation: str, output: str) -> None:
        self._outputs[operation] = output

    def set_container_file(self, source: str, content: str | bytes) -> None:
        """Content ``copy_from_container`` writes for ``source``."""
        if isinstance(content, str):
            content = content.encode("utf-8")
        self._container_files[source] = content

    def reset(self) -> None:
        """Clear call log, failures and outputs."""
        self._call_log.clear()
        self._failures.clear()
        self._outputs.clear()
        self._container_files.clear()

    def _record(self, operation: str, *args: Any, **kwargs: Any) -> str:
        self._call_log.append(RuntimeCall(operation, args, kwargs))
        if operation in self._failures:
            raise ExternalProcessError(["mock", operation], 1, self._failures[operation])
        return self._outputs.get(operation, self._default_output)

    # ── ContainerRuntime ────────────────────────────────────────

    def compose_up(self, project: str, compose_file: Path) -> str:
        return self._record("compose_up", project, compose_file)

    def compose_stop(self, project: str, compose_file: Path) -> str:
        return self._record("compose_stop", project, compose_file)

    def compose_down(self, project: str, compose_file: Path, volumes: bool = False) -> str:
        return self._record("compose_down", project, compose_file, volumes=volumes)

    def compose_ps(self, project: str, compose_file: Path) -> str:
        return self._record("compose_ps", project, compose_file)

    def compose_logs(self, project: str, compose_file: Path, tail: int | None = None) -> str:
        return self._record("compose_logs", project, compose_file, tail=tail)

    def pull_image(self, image: str) -> str:
        return self._record("pull_image", image)

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
        return self._record(
            "run", image, list(command),
            volumes=list(volumes), entrypoint=entrypoint, platform=platform,
            workdir=workdir, env=dict(env or {}), network=network,
        )

    def copy_to_volume(self, volume: str, source: Path, dest: str) -> None:
        self._record("copy_to_volume", volume, source, dest)

    def mkdir_in_volume(self, volume: str, directory: str) -> None:
        self._record("mkdir_in_volume", volume, directory)

    def copy_from_container(self, container: str, source: str, dest: Path) -> None:
        self._record("copy_from_container", container, source, dest)
        if source in self._container_files:
            dest.parent.mkdir(parents=True, exist_ok=True)
            dest.write_bytes(self._container_files[source])

    def create_volume(self, name: str) -> None:
        self._record("create_volume", name)

    def remove_volume(self, name: str) -> None:
        self._record("remove_volume", name)
