"""
Stack use cases — what the CLI calls.

Each function opens a StackManager, runs one operation and returns a
result object.  Stack and settings errors end up in ``result.error``
instead of propagating, so the CLI only has to render.
"""

from __future__ import annotations

import logging
from collections.abc import Callable
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any

from ledgerstack.core.config.loader import ConfigError, load_settings
from ledgerstack.core.engine.stack_manager import StackManager
from ledgerstack.core.errors import StackError
from ledgerstack.core.models.options import InitOptions, StartOptions
from ledgerstack.core.persistence.layout_upgrade import UpgradeResult, upgrade_layout
from ledgerstack.core.persistence.stack_store import StackRepository

logger = logging.getLogger(__name__)

Progress = Callable[[str], None]


def _silent(message: str) -> None:
    pass


def open_manager(
    home: str | Path | None = None,
    mock: bool = False,
    progress: Progress = _silent,
) -> StackManager:
    """Build a StackManager for the given home directory.

    ``mock`` swaps docker for the recording MockRuntime.
    """
    settings = load_settings(home)
    if mock:
        from ledgerstack.adapters.mock import MockRuntime

        runtime = MockRuntime()
    else:
        from ledgerstack.adapters.containers.docker import DockerRuntime

        runtime = DockerRuntime()
    return StackManager(settings, runtime, progress=progress)


# ── Results ─────────────────────────────────────────────────────


@dataclass
class OperationResult:
    """Outcome of a command with no payload."""

    stack_name: str
    operation: str
    error: str | None = None

    @property
    def ok(self) -> bool:
        return self.error is None

    def to_dict(self) -> dict:
        result: dict = {"stack": self.stack_name, "operation": self.operation, "ok": self.ok}
        if self.error:
            result["error"] = self.error
        return result


@dataclass
class InitResult:
    stack_name: str
    members: list[dict[str, Any]] = field(default_factory=list)
    blockchain_provider: str = ""
    token_providers: list[str] = field(default_factory=list)
    stack_dir: str = ""
    error: str | None = None

    def to_dict(self) -> dict:
        if self.error:
            return {"stack": self.stack_name, "error": self.error}
        return {
            "stack": self.stack_name,
            "blockchain_provider": self.blockchain_provider,
            "token_providers": self.token_providers,
            "stack_dir": self.stack_dir,
            "members": self.members,
        }


@dataclass
class StartResult:
    stack_name: str
    first_time_setup: bool = False
    ui_urls: dict[str, str] = field(default_factory=dict)
    error: str | None = None

    def to_dict(self) -> dict:
        result: dict = {
            "stack": self.stack_name,
            "first_time_setup": self.first_time_setup,
            "ui_urls": self.ui_urls,
        }
        if self.error:
            result["error"] = self.error
        return result


@dataclass
class ListResult:
    stacks: list[str] = field(default_factory=list)
    error: str | None = None

    def to_dict(self) -> dict:
        result: dict = {"stacks": self.stacks}
        if self.error:
            result["error"] = self.error
        return result


@dataclass
class OutputResult:
    """Raw runtime output (``info``, ``logs``)."""

    stack_name: str
    output: str = ""
    error: str | None = None

    def to_dict(self) -> dict:
        result: dict = {"stack": self.stack_name, "output": self.output}
        if self.error:
            result["error"] = self.error
        return result


@dataclass
class PullResult:
    stack_name: str
    images: list[str] = field(default_factory=list)
    error: str | None = None

    def to_dict(self) -> dict:
        result: dict = {"stack": self.stack_name, "images": self.images}
        if self.error:
            result["error"] = self.error
        return result


@dataclass
class AccountsResult:
    stack_name: str
    accounts: list[dict[str, Any]] = field(default_factory=list)
    error: str | None = None

    def to_dict(self) -> dict:
        result: dict = {"stack": self.stack_name, "accounts": self.accounts}
        if self.error:
            result["error"] = self.error
        return result


@dataclass
class ContractsResult:
    stack_name: str
    contracts: list[str] = field(default_factory=list)
    deployed: list[dict[str, Any]] = field(default_factory=list)
    error: str | None = None

    def to_dict(self) -> dict:
        result: dict = {
            "stack": self.stack_name,
            "contracts": self.contracts,
            "deployed": self.deployed,
        }
        if self.error:
            result["error"] = self.error
        return result


@dataclass
class DeployResult:
    stack_name: str
    contract_name: str
    message: str = ""
    location: dict[str, Any] = field(default_factory=dict)
    error: str | None = None

    def to_dict(self) -> dict:
        result: dict = {
            "stack": self.stack_name,
            "contract": self.contract_name,
            "message": self.message,
            "location": self.location,
        }
        if self.error:
            result["error"] = self.error
        return result


@dataclass
class UpgradeLayoutResult:
    stack_name: str
    upgrade: UpgradeResult | None = None
    error: str | None = None

    def to_dict(self) -> dict:
        if self.error:
            return {"stack": self.stack_name, "error": self.error}
        assert self.upgrade is not None
        return self.upgrade.to_dict()


# ── Operations ──────────────────────────────────────────────────


def ui_urls(manager: StackManager) -> dict[str, str]:
    """Web UI URL per member id."""
    assert manager.stack is not None
    return {
        m.id: f"http://127.0.0.1:{m.ports.firefly}/ui"
        for m in manager.stack.members
    }


def init_stack(
    name: str,
    member_count: int,
    options: InitOptions,
    *,
    home: str | Path | None = None,
    mock: bool = False,
    progress: Progress = _silent,
) -> InitResult:
    result = InitResult(stack_name=name)
    try:
        manager = open_manager(home, mock, progress)
        stack = manager.init_stack(name, member_count, options)
    except (StackError, ConfigError) as e:
        result.error = str(e)
        return result

    result.blockchain_provider = stack.blockchain_provider
    result.token_providers = list(stack.token_providers)
    result.stack_dir = str(manager.layout.stack_dir)
    result.members = [
        {
            "id": m.id,
            "address": m.address,
            "org_name": m.org_name,
            "node_name": m.node_name,
            "external": m.external,
            "ports": m.ports.model_dump(),
        }
        for m in stack.members
    ]
    return result


def start_stack(
    name: str,
    options: StartOptions,
    *,
    home: str | Path | None = None,
    mock: bool = False,
    progress: Progress = _silent,
) -> StartResult:
    result = StartResult(stack_name=name)
    try:
        manager = open_manager(home, mock, progress)
        manager.load_stack(name)
        result.first_time_setup = manager.start_stack(options)
    except (StackError, ConfigError) as e:
        result.error = str(e)
        return result
    result.ui_urls = ui_urls(manager)
    return result


def _simple(
    name: str,
    operation: str,
    action: Callable[[StackManager], None],
    home: str | Path | None,
    mock: bool,
    progress: Progress,
) -> OperationResult:
    result = OperationResult(stack_name=name, operation=operation)
    try:
        manager = open_manager(home, mock, progress)
        manager.load_stack(name)
        action(manager)
    except (StackError, ConfigError) as e:
        result.error = str(e)
    return result


def stop_stack(name: str, *, home=None, mock=False, progress: Progress = _silent) -> OperationResult:
    return _simple(name, "stop", StackManager.stop_stack, home, mock, progress)


def reset_stack(name: str, *, home=None, mock=False, progress: Progress = _silent) -> OperationResult:
    return _simple(name, "reset", StackManager.reset_stack, home, mock, progress)


def remove_stack(name: str, *, home=None, mock=False, progress: Progress = _silent) -> OperationResult:
    return _simple(name, "remove", StackManager.remove_stack, home, mock, progress)


def list_stacks(*, home: str | Path | None = None) -> ListResult:
    try:
        settings = load_settings(home)
    except ConfigError as e:
        return ListResult(error=str(e))
    return ListResult(stacks=StackRepository(settings.stacks_dir).list_names())


def stack_info(name: str, *, home=None, mock=False) -> OutputResult:
    result = OutputResult(stack_name=name)
    try:
        manager = open_manager(home, mock)
        manager.load_stack(name)
        result.output = manager.stack_info()
    except (StackError, ConfigError) as e:
        result.error = str(e)
    return result


def stack_logs(name: str, tail: int | None = None, *, home=None, mock=False) -> OutputResult:
    result = OutputResult(stack_name=name)
    try:
        manager = open_manager(home, mock)
        manager.load_stack(name)
        result.output = manager.stack_logs(tail)
    except (StackError, ConfigError) as e:
        result.error = str(e)
    return result


def pull_stack(
    name: str,
    retries: int | None = None,
    *,
    home=None,
    mock=False,
    progress: Progress = _silent,
) -> PullResult:
    result = PullResult(stack_name=name)
    try:
        manager = open_manager(home, mock, progress)
        manager.load_stack(name)
        result.images = manager.pull_stack(retries)
    except (StackError, ConfigError) as e:
        result.error = str(e)
    return result


def list_accounts(name: str, *, home=None) -> AccountsResult:
    result = AccountsResult(stack_name=name)
    try:
        manager = open_manager(home, mock=True)
        manager.load_stack(name)
        result.accounts = manager.accounts()
    except (StackError, ConfigError) as e:
        result.error = str(e)
    return result


def list_contracts(name: str, filename: str | None = None, *, home=None) -> ContractsResult:
    """Contracts in ``filename`` (if given) and those already deployed."""
    result = ContractsResult(stack_name=name)
    try:
        manager = open_manager(home, mock=True)
        manager.load_stack(name)
        if filename:
            result.contracts = manager.get_contracts(filename)
        result.deployed = [
            c.model_dump(mode="json") for c in manager.deployed_contracts().deployed_contracts
        ]
    except (StackError, ConfigError) as e:
        result.error = str(e)
    return result


def deploy_contract(
    name: str,
    filename: str,
    contract_name: str,
    member_index: int = 0,
    extra_args: list[str] | None = None,
    *,
    home=None,
    mock=False,
    progress: Progress = _silent,
) -> DeployResult:
    result = DeployResult(stack_name=name, contract_name=contract_name)
    try:
        manager = open_manager(home, mock, progress)
        manager.load_stack(name)
        deployment = manager.deploy_contract(filename, contract_name, member_index, extra_args)
    except (StackError, ConfigError) as e:
        result.error = str(e)
        return result
    result.message = deployment.message
    result.location = dict(deployment.deployed_contract.location)
    return result


def upgrade_stack_layout(name: str, *, home: str | Path | None = None) -> UpgradeLayoutResult:
    result = UpgradeLayoutResult(stack_name=name)
    try:
        settings = load_settings(home)
        result.upgrade = upgrade_layout(StackRepository(settings.stacks_dir), name)
    except (StackError, ConfigError) as e:
        result.error = str(e)
    return result
