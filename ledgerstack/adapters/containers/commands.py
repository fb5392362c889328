"""
Typed command builders for docker and docker compose.

Every external call is assembled here as an argument vector.  Nothing
is ever passed through a shell, so paths and values need no quoting.
"""

from __future__ import annotations

import posixpath
from collections.abc import Iterable, Mapping
from dataclasses import dataclass, field
from pathlib import Path

HELPER_IMAGE = "alpine"


@dataclass(frozen=True)
class DockerCommand:
    """``docker <args...>``"""

    args: tuple[str, ...]

    def argv(self) -> list[str]:
        return ["docker", *self.args]

    # ── Builders ────────────────────────────────────────────────

    @classmethod
    def run(
        cls,
        image: str,
        command: Iterable[str] = (),
        *,
        volumes: Iterable[str] = (),
        entrypoint: str | None = None,
        platform: str | None = None,
        workdir: str | None = None,
        env: Mapping[str, str] | None = None,
        network: str | None = None,
    ) -> DockerCommand:
        """One-shot container, removed on exit."""
        args = ["run", "--rm"]
        for volume in volumes:
            args += ["-v", volume]
        for key, value in (env or {}).items():
            args += ["-e", f"{key}={value}"]
        if entrypoint:
            args += ["--entrypoint", entrypoint]
        if platform:
            args += ["--platform", platform]
        if workdir:
            args += ["-w", workdir]
        if network:
            args += ["--network", network]
        args.append(image)
        args += list(command)
        return cls(tuple(args))

    @classmethod
    def copy_to_volume(cls, volume: str, source: Path, dest: str) -> DockerCommand:
        """Copy a host file or directory into a named volume."""
        name = source.name
        return cls.run(
            HELPER_IMAGE,
            ["cp", "-R", posixpath.join("/source", name), posixpath.join("/dest", dest.lstrip("/"))],
            volumes=[f"{source.resolve()}:/source/{name}", f"{volume}:/dest"],
        )

    @classmethod
    def mkdir_in_volume(cls, volume: str, directory: str) -> DockerCommand:
        return cls.run(
            HELPER_IMAGE,
            ["mkdir", "-p", posixpath.join("/dest", directory.lstrip("/"))],
            volumes=[f"{volume}:/dest"],
        )

    @classmethod
    def copy_from_container(cls, container: str, source: str, dest: Path) -> DockerCommand:
        return cls(("cp", f"{container}:{source}", str(dest)))

    @classmethod
    def pull(cls, image: str) -> DockerCommand:
        return cls(("pull", image))

    @classmethod
    def volume_create(cls, name: str) -> DockerCommand:
        return cls(("volume", "create", name))

    @classmethod
    def volume_remove(cls, name: str) -> DockerCommand:
        # -f: a missing volume is not an error
        return cls(("volume", "rm", "-f", name))

    @classmethod
    def version(cls) -> DockerCommand:
        return cls(("version", "--format", "{{.Server.Version}}"))


@dataclass(frozen=True)
class ComposeCommand:
    """``docker compose -p <project> -f <file> <args...>``"""

    project: str
    compose_file: Path
    args: tuple[str, ...] = field(default_factory=tuple)

    def argv(self) -> list[str]:
        return [
            "docker", "compose",
            "-p", self.project,
            "-f", str(self.compose_file),
            *self.args,
        ]

    def _with(self, *args: str) -> ComposeCommand:
        return ComposeCommand(self.project, self.compose_file, tuple(args))

    def up(self, detach: bool = True, services: Iterable[str] = ()) -> ComposeCommand:
        args = ["up"]
        if detach:
            args.append("-d")
        args += list(services)
        return self._with(*args)

    def stop(self) -> ComposeCommand:
        return self._with("stop")

    def down(self, volumes: bool = False) -> ComposeCommand:
        return self._with("down", "--volumes") if volumes else self._with("down")

    def ps(self) -> ComposeCommand:
        return self._with("ps")

    def logs(self, tail: int | None = None) -> ComposeCommand:
        if tail is None:
            return self._with("logs", "--no-color")
        return self._with("logs", "--no-color", "--tail", str(tail))
