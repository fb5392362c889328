"""
Container runtime contract.

The orchestrator and the providers only talk to containers through this
interface.  The exit status of each call is the only success signal:
implementations raise ExternalProcessError on failure and return the
command's stdout otherwise.
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from collections.abc import Iterable, Mapping
from pathlib import Path


class ContainerRuntime(ABC):
    """Abstract container runtime (docker + compose)."""

    @property
    @abstractmethod
    def name(self) -> str:
        """Runtime identifier (e.g. 'docker', 'mock')."""

    @abstractmethod
    def is_available(self) -> bool:
        """Whether the runtime CLI exists.  Fast, never raises."""

    # ── Compose ─────────────────────────────────────────────────

    @abstractmethod
    def compose_up(self, project: str, compose_file: Path) -> str:
        """Create and start every service, detached.  Idempotent."""

    @abstractmethod
    def compose_stop(self, project: str, compose_file: Path) -> str: ...

    @abstractmethod
    def compose_down(self, project: str, compose_file: Path, volumes: bool = False) -> str: ...

    @abstractmethod
    def compose_ps(self, project: str, compose_file: Path) -> str: ...

    @abstractmethod
    def compose_logs(self, project: str, compose_file: Path, tail: int | None = None) -> str: ...

    # ── Images / containers / volumes ───────────────────────────

    @abstractmethod
    def pull_image(self, image: str) -> str: ...

    @abstractmethod
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
        """Run a one-shot container (``--rm``) and return its stdout."""

    @abstractmethod
    def copy_to_volume(self, volume: str, source: Path, dest: str) -> None:
        """Copy a host file/dir into a named volume at ``dest``."""

    @abstractmethod
    def mkdir_in_volume(self, volume: str, directory: str) -> None: ...

    @abstractmethod
    def copy_from_container(self, container: str, source: str, dest: Path) -> None:
        """Copy a path out of a (possibly stopped) container."""

    @abstractmethod
    def create_volume(self, name: str) -> None: ...

    @abstractmethod
    def remove_volume(self, name: str) -> None:
        """Remove a named volume; a missing volume is not an error."""

    def __repr__(self) -> str:
        return f"<{self.__class__.__name__} name={self.name!r}>"
