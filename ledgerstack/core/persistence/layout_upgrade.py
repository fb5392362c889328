"""
Explicit migration from the old merged stack layout.

Old stacks kept the manifest and configs directly in the stack directory
(``docker-compose.yml``, ``configs/``, ``blockchain/``).  Nothing else in
ledgerstack reads that layout: ``ledgerstack upgrade-layout <name>`` moves
the files into ``init/`` once, and every other command only ever sees the
split layout.
"""

from __future__ import annotations

import logging
import shutil
from dataclasses import dataclass, field

from ledgerstack.core.errors import PreflightError
from ledgerstack.core.persistence.stack_store import COMPOSE_FILE, StackRepository

logger = logging.getLogger(__name__)

# old path (relative to stack dir) → new path relative to init/
_MOVES = (
    (COMPOSE_FILE, COMPOSE_FILE),
    ("configs", "config"),
    ("blockchain", "blockchain"),
)


@dataclass
class UpgradeResult:
    name: str
    moved: list[str] = field(default_factory=list)
    already_current: bool = False

    def to_dict(self) -> dict:
        return {
            "name": self.name,
            "moved": self.moved,
            "already_current": self.already_current,
        }


def needs_upgrade(repo: StackRepository, name: str) -> bool:
    layout = repo.layout(name)
    return (layout.stack_dir / COMPOSE_FILE).is_file() and not layout.init_dir.is_dir()


def upgrade_layout(repo: StackRepository, name: str) -> UpgradeResult:
    """Move an old-layout stack into ``init/``.

    Raises:
        StackNotFoundError: If the stack has no record.
        PreflightError: If the stack has old runtime data that cannot be
            mapped (it must be reset with the old tool first).
    """
    repo.load(name)
    layout = repo.layout(name)
    result = UpgradeResult(name=name)

    if not needs_upgrade(repo, name):
        result.already_current = True
        return result

    if (layout.stack_dir / "data").exists():
        raise PreflightError(
            f"stack '{name}' has runtime data in the old layout; reset it before upgrading"
        )

    layout.init_dir.mkdir()
    for old, new in _MOVES:
        source = layout.stack_dir / old
        if not source.exists():
            continue
        shutil.move(str(source), str(layout.init_dir / new))
        result.moved.append(old)
        logger.info("Moved %s → init/%s", source, new)

    return result
