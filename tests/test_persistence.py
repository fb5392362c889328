"""
Tests for persistence — stack repository, atomic writes, layout upgrade.
"""

import json
from pathlib import Path

import pytest

from ledgerstack.core.errors import PreflightError, StackError, StackNotFoundError
from ledgerstack.core.models.stack import Member, Stack
from ledgerstack.core.models.state import DeployedContract, StackState
from ledgerstack.core.persistence.layout_upgrade import needs_upgrade, upgrade_layout
from ledgerstack.core.persistence.stack_store import (
    StackRepository,
    write_json_atomic,
)
from ledgerstack.core.services.ports import allocate_ports


def _stack(name: str = "dev") -> Stack:
    member = Member(
        id="0", index=0, address="0x" + "1" * 40, private_key="0xdead",
        ports=allocate_ports(5100, 5000, 0),
    )
    return Stack(name=name, members=[member])


@pytest.fixture
def repo(tmp_path: Path) -> StackRepository:
    return StackRepository(tmp_path / "stacks")


# ── Atomic writes ───────────────────────────────────────────────────


class TestWriteJsonAtomic:
    def test_writes_and_leaves_no_temp(self, tmp_path: Path):
        path = tmp_path / "sub" / "x.json"
        write_json_atomic(path, {"a": 1})
        assert json.loads(path.read_text()) == {"a": 1}
        assert [p.name for p in path.parent.iterdir()] == ["x.json"]

    def test_overwrites(self, tmp_path: Path):
        path = tmp_path / "x.json"
        write_json_atomic(path, {"a": 1})
        write_json_atomic(path, {"a": 2})
        assert json.loads(path.read_text()) == {"a": 2}


# ── Repository ──────────────────────────────────────────────────────


class TestStackRepository:
    def test_save_load(self, repo: StackRepository):
        repo.save(_stack())
        loaded = repo.load("dev")
        assert loaded.name == "dev"
        assert loaded.members[0].address == "0x" + "1" * 40

    def test_private_key_not_on_disk(self, repo: StackRepository):
        path = repo.save(_stack())
        assert "0xdead" not in path.read_text()
        assert repo.load("dev").members[0].private_key == ""

    def test_load_missing(self, repo: StackRepository):
        with pytest.raises(StackNotFoundError, match="'nope' does not exist"):
            repo.load("nope")

    def test_load_corrupt(self, repo: StackRepository):
        path = repo.layout("dev").stack_file
        path.parent.mkdir(parents=True)
        path.write_text('{"name": "dev"}')
        with pytest.raises(StackError, match="invalid stack record"):
            repo.load("dev")

    def test_list_names_sorted_and_filtered(self, repo: StackRepository):
        repo.save(_stack("zeta"))
        repo.save(_stack("alpha"))
        (repo.stacks_dir / "stray").mkdir()
        assert repo.list_names() == ["alpha", "zeta"]

    def test_list_names_without_dir(self, repo: StackRepository):
        assert repo.list_names() == []

    def test_delete(self, repo: StackRepository):
        repo.save(_stack())
        repo.delete("dev")
        assert not repo.layout("dev").stack_dir.exists()
        repo.delete("dev")  # second delete is a no-op

    def test_has_run_follows_runtime_dir(self, repo: StackRepository):
        repo.save(_stack())
        assert not repo.has_run("dev")
        repo.layout("dev").runtime_dir.mkdir()
        assert repo.has_run("dev")

    def test_state_round_trip(self, repo: StackRepository):
        repo.save(_stack())
        assert repo.load_state("dev") == StackState()
        state = StackState(deployed_contracts=[
            DeployedContract(name="FireFly", location={"address": "0xabc"}),
        ])
        repo.save_state("dev", state)
        assert repo.layout("dev").state_file.parent.name == "runtime"
        assert repo.load_state("dev").deployed_contracts[0].location == {"address": "0xabc"}


class TestStackLayout:
    def test_paths(self, repo: StackRepository):
        layout = repo.layout("dev")
        assert layout.init_dir == repo.stacks_dir / "dev" / "init"
        assert layout.member_config(layout.init_dir, "1").name == "firefly_core_1.yml"

    def test_active_compose_file(self, repo: StackRepository):
        layout = repo.layout("dev")
        assert layout.active_compose_file() == layout.init_dir / "docker-compose.yml"
        layout.runtime_dir.mkdir(parents=True)
        (layout.runtime_dir / "docker-compose.yml").write_text("version: '2.1'\n")
        assert layout.active_compose_file() == layout.runtime_dir / "docker-compose.yml"


# ── Layout upgrade ──────────────────────────────────────────────────


class TestUpgradeLayout:
    def _old_stack(self, repo: StackRepository) -> Path:
        repo.save(_stack())
        stack_dir = repo.layout("dev").stack_dir
        (stack_dir / "docker-compose.yml").write_text("version: '2.1'\n")
        (stack_dir / "configs").mkdir()
        (stack_dir / "configs" / "firefly_core_0.yml").write_text("log: {}\n")
        return stack_dir

    def test_moves_files_into_init(self, repo: StackRepository):
        stack_dir = self._old_stack(repo)
        assert needs_upgrade(repo, "dev")
        result = upgrade_layout(repo, "dev")
        assert result.moved == ["docker-compose.yml", "configs"]
        assert (stack_dir / "init" / "docker-compose.yml").is_file()
        assert (stack_dir / "init" / "config" / "firefly_core_0.yml").is_file()
        assert not (stack_dir / "configs").exists()
        assert not needs_upgrade(repo, "dev")

    def test_current_layout_untouched(self, repo: StackRepository):
        repo.save(_stack())
        repo.layout("dev").init_dir.mkdir()
        result = upgrade_layout(repo, "dev")
        assert result.already_current
        assert result.to_dict()["moved"] == []

    def test_refuses_old_runtime_data(self, repo: StackRepository):
        stack_dir = self._old_stack(repo)
        (stack_dir / "data").mkdir()
        with pytest.raises(PreflightError, match="reset it before upgrading"):
            upgrade_layout(repo, "dev")
        assert (stack_dir / "docker-compose.yml").is_file()

    def test_missing_stack(self, repo: StackRepository):
        with pytest.raises(StackNotFoundError):
            upgrade_layout(repo, "ghost")
