"""
Tests for the stack lifecycle orchestrator.

Covers init validation, first-time setup and its rollback, steady
restarts, stop/reset/remove and the supplementary operations.  Every
test runs against MockRuntime and FakeHttp.
"""

import json
from pathlib import Path

import pytest
import yaml

from ledgerstack.core.errors import (
    InvalidSelectionError,
    ManifestError,
    PortUnavailableError,
    ReadinessTimeoutError,
    SetupFailedError,
    StackError,
    StackExistsError,
    StackNotFoundError,
    UnknownProviderError,
)
from ledgerstack.core.models.options import InitOptions, StartOptions
from ledgerstack.core.models.stack import Stack
from ledgerstack.core.services import compose_generate as compose
from tests.fakes import CONTRACT_ADDRESS, combined_json, snapshot

SETUP_STEPS = [
    "copying init directory to runtime",
    "disabling firefly core containers",
    "initializing blockchain node",
    "copying prometheus config",
    "writing data exchange certificates",
    "starting FireFly dependencies",
    "deploying token contracts",
    "deploying FireFly contract",
    "copying node configs",
    "starting FireFly nodes",
    "waiting for external members",
    "registering FireFly identities",
    "initializing token providers",
]


def _steps(messages: list[str]) -> list[str]:
    return [m for m in messages if m in SETUP_STEPS]


# ── Init ────────────────────────────────────────────────────────────


class TestInit:
    def test_demo_stack(self, make_manager, runtime, settings):
        manager = make_manager()
        stack = manager.init_stack("demo", 2)

        first, second = stack.members
        assert (first.ports.firefly, first.ports.admin, first.ports.connector) == (5000, 5101, 5102)
        assert first.ports.tokens == [5108]
        assert (second.ports.firefly, second.ports.admin) == (5001, 5201)
        assert second.ports.tokens == [5208]
        assert first.org_name == "org_0"
        assert second.node_name == "node_1"

        layout = manager.layout
        doc = compose.read_compose(layout.compose_file(layout.init_dir))
        depends = doc.services["firefly_core_0"].depends_on
        for service in ("geth", "ethconnect_0", "ethconnect_1", "tokens_0_0", "ipfs_0", "dataexchange_0"):
            assert service in depends
        assert not layout.runtime_dir.exists()
        assert runtime.call_count == 0

    def test_init_tree(self, make_manager):
        manager = make_manager()
        manager.init_stack("dev", 2)
        layout = manager.layout
        assert (layout.init_dir / "docker-compose.yml").is_file()
        assert (layout.init_dir / "config" / "firefly_core_1.yml").is_file()
        assert (layout.init_dir / "config" / "ethconnect_1.yaml").is_file()
        assert (layout.init_dir / "blockchain" / "genesis.json").is_file()
        assert layout.stack_file.is_file()

    def test_private_keys_not_persisted(self, make_manager):
        manager = make_manager()
        stack = manager.init_stack("dev", 1)
        record = manager.layout.stack_file.read_text()
        assert "private_key" not in record
        assert stack.members[0].private_key[2:] not in record

    def test_record_round_trip(self, make_manager):
        manager = make_manager()
        stack = manager.init_stack("dev", 2, InitOptions(database="postgres"))
        loaded = make_manager().load_stack("dev")
        assert isinstance(loaded, Stack)
        assert loaded.model_dump() == stack.model_dump()
        assert all(m.private_key == "" for m in loaded.members)

    def test_names_and_options(self, make_manager):
        options = InitOptions(
            org_names=["acme"],
            node_names=["acme-node"],
            chain_id=1337,
            prometheus_enabled=True,
            token_providers=["erc1155", "erc20_erc721"],
        )
        stack = make_manager().init_stack("dev", 2, options)
        assert stack.members[0].org_name == "acme"
        assert stack.members[0].node_name == "acme-node"
        assert stack.members[1].org_name == "org_1"
        assert stack.members[0].ports.metrics == 5108
        assert stack.members[0].ports.tokens == [5109, 5110]
        assert stack.chain_id == 1337

    def test_prometheus_config_written(self, make_manager):
        manager = make_manager()
        manager.init_stack("dev", 1, InitOptions(prometheus_enabled=True))
        path = manager.layout.init_dir / "config" / "prometheus.yml"
        targets = yaml.safe_load(path.read_text())["scrape_configs"][0]["static_configs"][0]["targets"]
        assert targets == ["firefly_core_0:5108"]

    def test_external_members(self, make_manager):
        manager = make_manager()
        stack = manager.init_stack("dev", 3, InitOptions(external_processes=1))
        assert [m.external for m in stack.members] == [True, False, False]
        doc = compose.read_compose(manager.layout.compose_file(manager.layout.init_dir))
        assert "firefly_core_0" not in doc.services
        assert "ipfs_0" in doc.services


class TestInitValidation:
    @pytest.mark.parametrize("name", ["bad name", "dots.are.bad", ""])
    def test_bad_name(self, make_manager, name):
        with pytest.raises(InvalidSelectionError, match="invalid stack name"):
            make_manager().init_stack(name, 1)

    def test_exists(self, make_manager):
        make_manager().init_stack("dev", 1)
        with pytest.raises(StackExistsError):
            make_manager().init_stack("dev", 1)

    def test_member_count(self, make_manager, settings):
        with pytest.raises(InvalidSelectionError, match="at least one member"):
            make_manager().init_stack("dev", 0)
        assert not (settings.stacks_dir / "dev").exists()

    def test_too_many_external(self, make_manager):
        with pytest.raises(InvalidSelectionError, match="external process count 3"):
            make_manager().init_stack("dev", 2, InitOptions(external_processes=3))

    def test_bad_database(self, make_manager):
        with pytest.raises(InvalidSelectionError, match="invalid database 'mysql'"):
            make_manager().init_stack("dev", 1, InitOptions(database="mysql"))

    def test_unknown_provider(self, make_manager, settings):
        with pytest.raises(UnknownProviderError):
            make_manager().init_stack("dev", 1, InitOptions(blockchain_provider="quorum"))
        assert not (settings.stacks_dir / "dev").exists()

    def test_incompatible_providers(self, make_manager, settings):
        options = InitOptions(blockchain_provider="fabric", token_providers=["erc1155"])
        with pytest.raises(InvalidSelectionError, match="requires an ethereum"):
            make_manager().init_stack("dev", 1, options)
        assert not (settings.stacks_dir / "dev").exists()

    def test_busy_port(self, make_manager, busy_ports, runtime, settings):
        busy_ports.add(5202)
        with pytest.raises(PortUnavailableError) as exc:
            make_manager().init_stack("dev", 2)
        assert exc.value.port == 5202
        assert runtime.call_count == 0
        assert not (settings.stacks_dir / "dev").exists()

    def test_manifest_failure(self, make_manager, settings):
        def unreachable(release, manifest_path, settings, http):
            raise ManifestError("unable to fetch manifest for release v9.9.9")

        with pytest.raises(ManifestError):
            make_manager(manifest_resolver=unreachable).init_stack("dev", 1)
        assert not (settings.stacks_dir / "dev").exists()

    def test_write_failure_removes_directory(self, make_manager, settings, tmp_path: Path):
        options = InitOptions(extra_core_config=str(tmp_path / "missing.yml"))
        with pytest.raises(StackError, match="extra core config"):
            make_manager().init_stack("dev", 1, options)
        assert not (settings.stacks_dir / "dev").exists()


# ── First start ─────────────────────────────────────────────────────


class TestFirstStart:
    def test_runs_every_step_in_order(self, make_manager, runtime):
        messages = []
        make_manager().init_stack("dev", 2)
        manager = make_manager(progress=messages.append)
        manager.load_stack("dev")

        assert manager.start_stack() is True
        expected = [s for s in SETUP_STEPS if s not in ("copying prometheus config", "waiting for external members")]
        assert _steps(messages) == expected
        assert len(runtime.calls("compose_up")) == 2

    def test_state_and_configs(self, make_manager):
        make_manager().init_stack("dev", 2)
        manager = make_manager()
        manager.load_stack("dev")
        manager.start_stack()

        layout = manager.layout
        state = manager.deployed_contracts()
        assert [c.name for c in state.deployed_contracts] == ["ERC1155MixedFungible", "FireFly"]
        assert state.first_start_completed_at is not None

        runtime_config = yaml.safe_load(layout.member_config(layout.runtime_dir, "1").read_text())
        instance = runtime_config["blockchain"]["ethereum"]["ethconnect"]["instance"]
        assert instance == f"/instances/{CONTRACT_ADDRESS}"
        init_config = yaml.safe_load(layout.member_config(layout.init_dir, "1").read_text())
        assert init_config["blockchain"]["ethereum"]["ethconnect"]["instance"] == "/contracts/firefly"

        doc = compose.read_compose(layout.compose_file(layout.runtime_dir))
        assert doc.services["firefly_core_0"].entrypoint == compose.DEFAULT_ENTRYPOINT

    def test_node_configs_copied(self, make_manager, runtime):
        make_manager().init_stack("dev", 2)
        manager = make_manager()
        manager.load_stack("dev")
        manager.start_stack()
        copied = [c.args[0] for c in runtime.calls("copy_to_volume") if c.args[2] == "firefly.core.yml"]
        assert copied == ["dev_firefly_core_0", "dev_firefly_core_1"]

    def test_dataexchange_material(self, make_manager, runtime):
        make_manager().init_stack("dev", 1)
        manager = make_manager()
        manager.load_stack("dev")
        manager.start_stack()
        dx_dir = manager.layout.runtime_dir / "config" / "dataexchange_0"
        config = json.loads((dx_dir / "config.json").read_text())
        assert config["p2p"]["endpoint"] == "https://dataexchange_0:3001"
        assert (dx_dir / "cert.pem").is_file()
        assert runtime.calls("mkdir_in_volume")[0].args == ("dev_dataexchange_0", "peer-certs")

    def test_predeployed_contract(self, make_manager):
        messages = []
        make_manager().init_stack("dev", 1, InitOptions(contract_address="0x1234", token_providers=[]))
        manager = make_manager(progress=messages.append)
        manager.load_stack("dev")
        manager.start_stack()
        assert "deploying FireFly contract" not in messages
        assert manager.deployed_contracts().deployed_contracts == []

    def test_prometheus(self, make_manager, runtime):
        make_manager().init_stack("dev", 1, InitOptions(prometheus_enabled=True))
        manager = make_manager()
        manager.load_stack("dev")
        manager.start_stack()
        volumes = [c.args[0] for c in runtime.calls("copy_to_volume")]
        assert "dev_prometheus_config" in volumes

    def test_external_member(self, make_manager, http, settings):
        make_manager().init_stack("dev", 2, InitOptions(external_processes=1))
        manager = make_manager()
        manager.load_stack("dev")
        manager.start_stack()
        assert http.urls("PUT") == ["http://127.0.0.1:5101/admin/api/v1/config/records/admin"]
        assert (manager.layout.runtime_dir / "data" / "sqlite").is_dir()

    def test_external_member_never_starts(self, make_manager):
        make_manager().init_stack("dev", 2, InitOptions(external_processes=1))
        messages = []
        manager = make_manager(readiness_probe=lambda port: False, progress=messages.append)
        manager.load_stack("dev")

        with pytest.raises(SetupFailedError) as exc:
            manager.start_stack()
        assert exc.value.step == "waiting for external members"
        assert isinstance(exc.value.cause, ReadinessTimeoutError)
        assert any(m.startswith("please start your firefly core") for m in messages)

    def test_busy_port_runs_nothing(self, make_manager, runtime, busy_ports):
        make_manager().init_stack("dev", 2)
        busy_ports.add(5001)
        manager = make_manager()
        manager.load_stack("dev")
        with pytest.raises(PortUnavailableError):
            manager.start_stack()
        assert runtime.call_count == 0
        assert not manager.layout.runtime_dir.exists()


class TestRollback:
    def test_restores_post_init_state(self, make_manager, runtime, http):
        make_manager().init_stack("dev", 2, InitOptions(token_providers=[]))
        manager = make_manager()
        manager.load_stack("dev")
        before = snapshot(manager.layout.stack_dir)
        http.fail_on["/abis"] = 500

        with pytest.raises(SetupFailedError) as exc:
            manager.start_stack()

        message = str(exc.value)
        assert message.startswith("deploying FireFly contract: ")
        assert "returned 500" in message
        assert f"runtime directory {manager.layout.runtime_dir} removed" in message
        assert exc.value.reset_error is None
        assert not manager.layout.runtime_dir.exists()
        assert snapshot(manager.layout.stack_dir) == before
        assert runtime.calls("compose_down")[0].kwargs == {"volumes": True}
        removed = [c.args[0] for c in runtime.calls("remove_volume")]
        assert "dev_geth" in removed
        assert "dev_firefly_core_1" in removed

    def test_start_again_after_rollback(self, make_manager, runtime, http):
        make_manager().init_stack("dev", 1, InitOptions(token_providers=[]))
        manager = make_manager()
        manager.load_stack("dev")
        http.fail_on["/abis"] = 500
        with pytest.raises(SetupFailedError):
            manager.start_stack()

        http.fail_on.clear()
        assert manager.start_stack() is True
        assert manager.has_run()

    def test_container_failure(self, make_manager, runtime):
        make_manager().init_stack("dev", 1)
        manager = make_manager()
        manager.load_stack("dev")
        runtime.set_failure("compose_up")
        with pytest.raises(SetupFailedError, match="starting FireFly dependencies: mock compose_up: Mock failure"):
            manager.start_stack()

    def test_reset_failure_reported(self, make_manager, runtime):
        make_manager().init_stack("dev", 1)
        manager = make_manager()
        manager.load_stack("dev")
        runtime.set_failure("compose_up")
        runtime.set_failure("compose_down", "daemon gone")

        with pytest.raises(SetupFailedError) as exc:
            manager.start_stack()
        assert exc.value.reset_error is not None
        assert "error resetting stack: mock compose_down: daemon gone" in str(exc.value)

    def test_reset_failure_still_removes_runtime(self, make_manager, runtime):
        make_manager().init_stack("dev", 1)
        manager = make_manager()
        manager.load_stack("dev")
        runtime.set_failure("compose_up")
        runtime.set_failure("compose_down", "daemon gone")
        with pytest.raises(SetupFailedError):
            manager.start_stack()

        assert not manager.layout.runtime_dir.exists()
        assert not manager.has_run()

        runtime.clear_failures()
        assert manager.start_stack() is True
        assert manager.has_run()

    def test_no_rollback(self, make_manager, runtime):
        make_manager().init_stack("dev", 1)
        manager = make_manager()
        manager.load_stack("dev")
        runtime.set_failure("compose_up")
        with pytest.raises(StackError, match="mock compose_up") as exc:
            manager.start_stack(StartOptions(no_rollback=True))
        assert not isinstance(exc.value, SetupFailedError)
        assert manager.layout.runtime_dir.is_dir()
        assert runtime.calls("compose_down") == []


class TestSteadyStart:
    def test_second_start_skips_setup(self, make_manager, runtime, http):
        make_manager().init_stack("dev", 1)
        manager = make_manager()
        manager.load_stack("dev")
        manager.start_stack()
        runtime.reset()
        http.calls.clear()

        again = make_manager()
        again.load_stack("dev")
        assert again.start_stack() is False
        assert [c.operation for c in runtime.call_log] == ["compose_up"]
        assert runtime.call_log[0].args[1] == again.layout.compose_file(again.layout.runtime_dir)
        # geth unlocks do not survive a restart
        assert [c[2]["method"] for c in http.calls] == ["personal_unlockAccount"]


# ── Stop / reset / remove ───────────────────────────────────────────


class TestStopResetRemove:
    def test_stop_before_start_uses_init_manifest(self, make_manager, runtime):
        make_manager().init_stack("dev", 1)
        manager = make_manager()
        manager.load_stack("dev")
        manager.stop_stack()
        call = runtime.calls("compose_stop")[0]
        assert call.args == ("dev", manager.layout.compose_file(manager.layout.init_dir))

    def test_reset_keeps_init(self, make_manager):
        make_manager().init_stack("dev", 1)
        manager = make_manager()
        manager.load_stack("dev")
        before = snapshot(manager.layout.stack_dir)
        manager.start_stack()
        manager.reset_stack()
        assert not manager.has_run()
        assert snapshot(manager.layout.stack_dir) == before

    def test_remove_leaves_nothing(self, make_manager, settings, runtime):
        make_manager().init_stack("dev", 1)
        manager = make_manager()
        manager.load_stack("dev")
        manager.start_stack()
        manager.remove_stack()
        assert not (settings.stacks_dir / "dev").exists()
        assert manager.list_stacks() == []
        assert runtime.calls("compose_down")

    def test_load_missing(self, make_manager):
        with pytest.raises(StackNotFoundError, match="stack 'ghost' does not exist"):
            make_manager().load_stack("ghost")


# ── Supplementary operations ────────────────────────────────────────


class TestPull:
    def test_images(self, make_manager, runtime):
        make_manager().init_stack("dev", 2)
        manager = make_manager()
        manager.load_stack("dev")
        images = manager.pull_stack()
        assert len(images) == len(set(images))
        assert compose.IPFS_IMAGE in images
        assert "ethereum/client-go:release-1.10" in images
        assert "ghcr.io/hyperledger/firefly:v1.0.0" in images
        assert [c.args[0] for c in runtime.calls("pull_image")] == images

    def test_retries_then_fails(self, make_manager, runtime):
        make_manager().init_stack("dev", 1)
        manager = make_manager()
        manager.load_stack("dev")
        runtime.set_failure("pull_image", "manifest unknown")
        with pytest.raises(StackError, match="manifest unknown"):
            manager.pull_stack(retries=2)
        assert len(runtime.calls("pull_image")) == 3


class TestDeployContract:
    def test_requires_running_stack(self, make_manager, tmp_path: Path):
        make_manager().init_stack("dev", 1)
        manager = make_manager()
        manager.load_stack("dev")
        with pytest.raises(StackError, match="has not been started"):
            manager.deploy_contract(str(tmp_path / "c.json"), "C")

    def test_appends_to_state(self, make_manager, tmp_path: Path):
        path = tmp_path / "combined.json"
        path.write_text(combined_json("SimpleStorage"))
        make_manager().init_stack("dev", 2)
        manager = make_manager()
        manager.load_stack("dev")
        manager.start_stack()

        result = manager.deploy_contract(str(path), "SimpleStorage", 1)
        assert result.deployed_contract.location == {"address": CONTRACT_ADDRESS}
        names = [c.name for c in manager.deployed_contracts().deployed_contracts]
        assert names[-1] == "SimpleStorage"
        assert manager.get_contracts(str(path)) == ["SimpleStorage.sol:SimpleStorage"]

    def test_bad_member(self, make_manager, tmp_path: Path):
        make_manager().init_stack("dev", 1)
        manager = make_manager()
        manager.load_stack("dev")
        manager.start_stack()
        with pytest.raises(InvalidSelectionError, match="has no member 4"):
            manager.deploy_contract(str(tmp_path / "c.json"), "C", 4)


class TestAccounts:
    def test_accounts(self, make_manager):
        stack = make_manager().init_stack("dev", 2)
        manager = make_manager()
        manager.load_stack("dev")
        accounts = manager.accounts()
        assert [a["address"] for a in accounts] == [m.address for m in stack.members]
        assert accounts[1]["org_name"] == "org_1"
