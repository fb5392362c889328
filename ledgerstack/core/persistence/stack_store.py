"""
Stack repository — the on-disk record of every stack.

Layout under ``<home>/stacks/<name>/``:

    stack.json            the Stack record (no private keys)
    init/                 immutable templates written by ``init``
        docker-compose.yml
        config/           per-member node configs, connector configs, …
        blockchain/       provider bootstrap artefacts
    runtime/              mutable copy mounted into containers; its
                          presence marks the stack as having run
        stack_state.json  contracts deployed while running

Writes of JSON records are atomic (temp file + rename).
"""

from __future__ import annotations

import json
import logging
import os
import shutil
import tempfile
from dataclasses import dataclass
from pathlib import Path

from pydantic import BaseModel, ValidationError

from ledgerstack.core.errors import StackError, StackNotFoundError
from ledgerstack.core.models.stack import Stack
from ledgerstack.core.models.state import StackState

logger = logging.getLogger(__name__)

STACK_FILE = "stack.json"
STATE_FILE = "stack_state.json"
COMPOSE_FILE = "docker-compose.yml"


@dataclass(frozen=True)
class StackLayout:
    """Derived paths for one stack."""

    stacks_dir: Path
    name: str

    @property
    def stack_dir(self) -> Path:
        return self.stacks_dir / self.name

    @property
    def stack_file(self) -> Path:
        return self.stack_dir / STACK_FILE

    @property
    def init_dir(self) -> Path:
        return self.stack_dir / "init"

    @property
    def runtime_dir(self) -> Path:
        return self.stack_dir / "runtime"

    @property
    def state_file(self) -> Path:
        return self.runtime_dir / STATE_FILE

    def compose_file(self, root: Path) -> Path:
        return root / COMPOSE_FILE

    def config_dir(self, root: Path) -> Path:
        return root / "config"

    def blockchain_dir(self, root: Path) -> Path:
        return root / "blockchain"

    def member_config(self, root: Path, member_id: str) -> Path:
        return self.config_dir(root) / f"firefly_core_{member_id}.yml"

    def active_compose_file(self) -> Path:
        """Runtime manifest once the stack has run, else the init one."""
        runtime = self.compose_file(self.runtime_dir)
        return runtime if runtime.is_file() else self.compose_file(self.init_dir)


def write_json_atomic(path: Path, data: dict) -> None:
    """Write JSON to ``path`` via temp-file-then-rename."""
    path.parent.mkdir(parents=True, exist_ok=True)
    content = json.dumps(data, indent=2, ensure_ascii=False) + "\n"

    fd, tmp_path = tempfile.mkstemp(dir=path.parent, prefix=".stack_", suffix=".tmp")
    tmp = Path(tmp_path)
    try:
        with os.fdopen(fd, "w", encoding="utf-8") as fh:
            fh.write(content)
        tmp.replace(path)
    except Exception:
        tmp.unlink(missing_ok=True)
        raise


def _dump(model: BaseModel) -> dict:
    return model.model_dump(mode="json", by_alias=True)


class StackRepository:
    """Load and save whole Stack snapshots."""

    def __init__(self, stacks_dir: Path):
        self.stacks_dir = stacks_dir

    def layout(self, name: str) -> StackLayout:
        return StackLayout(self.stacks_dir, name)

    def exists(self, name: str) -> bool:
        return self.layout(name).stack_file.is_file()

    def load(self, name: str) -> Stack:
        """Load a stack record.

        Raises:
            StackNotFoundError: If no record exists.
            StackError: If the record is unreadable.
        """
        path = self.layout(name).stack_file
        if not path.is_file():
            raise StackNotFoundError(name)
        try:
            stack = Stack.model_validate_json(path.read_text(encoding="utf-8"))
        except ValidationError as e:
            raise StackError(f"invalid stack record {path}: {e}") from e
        logger.debug("Loaded stack '%s' from %s", name, path)
        return stack

    def save(self, stack: Stack) -> Path:
        path = self.layout(stack.name).stack_file
        write_json_atomic(path, _dump(stack))
        logger.debug("Stack '%s' saved to %s", stack.name, path)
        return path

    def list_names(self) -> list[str]:
        """Names of every stack with a record, sorted."""
        if not self.stacks_dir.is_dir():
            return []
        return sorted(
            p.name for p in self.stacks_dir.iterdir()
            if p.is_dir() and (p / STACK_FILE).is_file()
        )

    def delete(self, name: str) -> None:
        """Remove the whole stack directory."""
        stack_dir = self.layout(name).stack_dir
        if stack_dir.exists():
            shutil.rmtree(stack_dir)
            logger.info("Removed stack directory %s", stack_dir)

    # ── Run state ───────────────────────────────────────────────

    def has_run(self, name: str) -> bool:
        """The run-state marker: a runtime directory exists."""
        return self.layout(name).runtime_dir.is_dir()

    def load_state(self, name: str) -> StackState:
        path = self.layout(name).state_file
        if not path.is_file():
            return StackState()
        return StackState.model_validate_json(path.read_text(encoding="utf-8"))

    def save_state(self, name: str, state: StackState) -> None:
        write_json_atomic(self.layout(name).state_file, _dump(state))
