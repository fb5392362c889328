"""
Stack manager — the lifecycle orchestrator.

One StackManager serves one command invocation against one stack:

    init_stack   → writes init/ and stack.json, nothing runs
    start_stack  → first run: run_first_time_setup (rolled back on failure)
                   later runs: bring the manifest up and wait for externals
    stop_stack   → compose stop, state kept
    reset_stack  → back to the post-init state
    remove_stack → reset, then delete everything

Providers are selected once, when the stack is created or loaded, and
only ever used through their base-class contract.  Every external call
is synchronous; the only waiting happens in the readiness prober and
the HTTP retry loops.
"""

from __future__ import annotations

import json
import logging
import shutil
import time
from collections.abc import Callable
from dataclasses import dataclass
from datetime import UTC, datetime
from typing import Any

from pydantic import ValidationError

from ledgerstack.adapters.base import ContainerRuntime
from ledgerstack.core.config.loader import Settings
from ledgerstack.core.errors import (
    InvalidSelectionError,
    ManifestError,
    SetupFailedError,
    StackError,
    StackExistsError,
)
from ledgerstack.core.models.options import InitOptions, StartOptions
from ledgerstack.core.models.stack import DATABASES, STACK_NAME_PATTERN, Member, Stack
from ledgerstack.core.models.state import StackState
from ledgerstack.core.observability.logging_config import stack_log, stack_log_path
from ledgerstack.core.persistence.stack_store import StackLayout, StackRepository
from ledgerstack.core.providers.base import (
    BlockchainProvider,
    ContractDeploymentResult,
    ProviderContext,
    TokenProvider,
)
from ledgerstack.core.providers.registry import ProviderRegistry, default_registry
from ledgerstack.core.reliability.http_client import JsonHttpClient
from ledgerstack.core.reliability.readiness import port_is_listening, wait_for_port
from ledgerstack.core.reliability.retry import retry
from ledgerstack.core.services import compose_generate as compose
from ledgerstack.core.services import identity
from ledgerstack.core.services.certs import self_signed_certificate
from ledgerstack.core.services.keys import KeyPair, new_keypair, new_swarm_key
from ledgerstack.core.services.node_config import (
    new_node_config,
    patch_node_config,
    write_node_config,
)
from ledgerstack.core.services.ports import (
    PortProbe,
    allocate_ports,
    check_port_available,
    check_ports_available,
    stack_ports,
)
from ledgerstack.core.services.prometheus import write_prometheus_config
from ledgerstack.core.services.version_manifest import check_manifest, resolve_manifest

logger = logging.getLogger(__name__)

ManifestResolver = Callable[..., Any]

DATAEXCHANGE_PORT = 3000
DATAEXCHANGE_P2P_PORT = 3001


def _silent(message: str) -> None:
    pass


@dataclass
class ExternalMemberNotice:
    """How to start an external member's node by hand."""

    member_id: str
    config_file: str

    def message(self) -> str:
        return (
            "please start your firefly core with the config file for this stack: "
            f"firefly -f {self.config_file}"
        )


class StackManager:
    """Drives one stack through its lifecycle."""

    def __init__(
        self,
        settings: Settings,
        runtime: ContainerRuntime,
        *,
        registry: ProviderRegistry | None = None,
        http: JsonHttpClient | None = None,
        port_probe: PortProbe = check_port_available,
        readiness_probe: Callable[[int], bool] = port_is_listening,
        manifest_resolver: ManifestResolver = resolve_manifest,
        keygen: Callable[[], KeyPair] = new_keypair,
        progress: Callable[[str], None] = _silent,
        sleep: Callable[[float], None] = time.sleep,
    ):
        self.settings = settings
        self.runtime = runtime
        self.repository = StackRepository(settings.stacks_dir)
        self.registry = registry or default_registry()
        self.http = http or JsonHttpClient(settings.http_retries, settings.http_retry_period)
        self.port_probe = port_probe
        self.readiness_probe = readiness_probe
        self.manifest_resolver = manifest_resolver
        self.keygen = keygen
        self.progress = progress
        self.sleep = sleep

        self.stack: Stack | None = None
        self.ctx: ProviderContext | None = None
        self.blockchain: BlockchainProvider | None = None
        self.tokens: list[TokenProvider] = []

        self._step = ""
        self._entrypoints: dict[str, list[str] | None] = {}

    # ── Accessors ───────────────────────────────────────────────

    @property
    def layout(self) -> StackLayout:
        return self.repository.layout(self._require_stack().name)

    def _require_stack(self) -> Stack:
        if self.stack is None:
            raise StackError("no stack loaded")
        return self.stack

    def _select_providers(self, stack: Stack) -> None:
        """Resolve provider kinds.  Called once per stack per invocation."""
        ctx = ProviderContext(
            stack=stack,
            layout=self.repository.layout(stack.name),
            runtime=self.runtime,
            http=self.http,
            settings=self.settings,
            progress=self.progress,
        )
        blockchain = self.registry.blockchain_provider(ctx)
        tokens = self.registry.token_providers(ctx, blockchain)
        self.stack, self.ctx, self.blockchain, self.tokens = stack, ctx, blockchain, tokens

    # ── Init ────────────────────────────────────────────────────

    def init_stack(self, name: str, member_count: int, options: InitOptions | None = None) -> Stack:
        """Create a stack: members, providers, manifest, configs.

        Every validation happens before the stack directory is created.
        If writing fails part way, the directory is removed again.

        Raises:
            StackExistsError: A stack with this name exists.
            InvalidSelectionError: Bad name, count, database or providers.
            PortUnavailableError: A required port is in use.
            ManifestError: The version manifest could not be resolved.
        """
        options = options or InitOptions()
        self._validate_init(name, member_count, options)

        manifest = self.manifest_resolver(
            options.release, options.manifest_path, self.settings, self.http
        )
        check_manifest(manifest, ["firefly", "dataexchange_https"])

        members = [self._new_member(i, options) for i in range(member_count)]
        try:
            stack = Stack(
                name=name,
                members=members,
                blockchain_provider=options.blockchain_provider,
                token_providers=list(options.token_providers),
                database=options.database,
                services_base_port=options.services_base_port,
                firefly_base_port=options.firefly_base_port,
                exposed_blockchain_port=options.services_base_port,
                prometheus_enabled=options.prometheus_enabled,
                exposed_prometheus_port=options.prometheus_port,
                chain_id=options.chain_id,
                contract_address=options.contract_address,
                remote_node_url=options.remote_node_url,
                swarm_key=new_swarm_key(),
                extra_core_config=options.extra_core_config or "",
                version_manifest=manifest,
            )
        except ValidationError as e:
            raise InvalidSelectionError(str(e)) from e

        self._select_providers(stack)
        try:
            doc = compose.build_manifest(stack, self.blockchain, self.tokens)
        except ValueError as e:
            raise ManifestError(str(e)) from e
        check_ports_available(stack_ports(stack), self.port_probe)

        layout = self.layout
        try:
            self._write_init_tree(stack, doc, options)
            self.repository.save(stack)
        except Exception:
            logger.debug("Init of '%s' failed, removing %s", name, layout.stack_dir)
            shutil.rmtree(layout.stack_dir, ignore_errors=True)
            raise

        logger.info("Initialized stack '%s' with %d member(s)", name, member_count)
        return stack

    def _validate_init(self, name: str, member_count: int, options: InitOptions) -> None:
        if not STACK_NAME_PATTERN.match(name):
            raise InvalidSelectionError(
                f"invalid stack name '{name}' (letters, digits, '-' and '_' only)"
            )
        if self.repository.layout(name).stack_dir.exists():
            raise StackExistsError(name)
        if member_count < 1:
            raise InvalidSelectionError("a stack needs at least one member")
        if options.external_processes < 0 or options.external_processes > member_count:
            raise InvalidSelectionError(
                f"external process count {options.external_processes} "
                f"must be between 0 and the member count ({member_count})"
            )
        if options.database not in DATABASES:
            raise InvalidSelectionError(
                f"invalid database '{options.database}' "
                f"(expected one of: {', '.join(DATABASES)})"
            )
        self.registry.check_blockchain(options.blockchain_provider)
        for kind in options.token_providers:
            self.registry.check_tokens(kind)

    def _new_member(self, index: int, options: InitOptions) -> Member:
        keypair = self.keygen()
        ports = allocate_ports(
            options.services_base_port,
            options.firefly_base_port,
            index,
            metrics=options.prometheus_enabled,
            token_providers=len(options.token_providers),
        )
        return Member(
            id=str(index),
            index=index,
            address=keypair.address,
            private_key=keypair.private_key,
            org_name=options.org_names[index] if index < len(options.org_names) else "",
            node_name=options.node_names[index] if index < len(options.node_names) else "",
            external=index < options.external_processes,
            ports=ports,
        )

    def _write_init_tree(self, stack: Stack, doc: compose.ComposeDocument, options: InitOptions) -> None:
        layout = self.layout
        init_dir = layout.init_dir
        layout.config_dir(init_dir).mkdir(parents=True, exist_ok=True)
        layout.blockchain_dir(init_dir).mkdir(parents=True, exist_ok=True)

        compose.write_compose(doc, layout.compose_file(init_dir))

        for member in stack.members:
            blockchain_config, org_config = self.blockchain.get_firefly_config(member)
            tokens = [tp.get_firefly_config(member, i) for i, tp in enumerate(self.tokens)]
            config = new_node_config(
                stack, member, blockchain_config, org_config, tokens,
                runtime_dir=layout.runtime_dir,
            )
            write_node_config(
                config,
                layout.member_config(init_dir, member.id),
                stack.extra_core_config or None,
            )

        self.blockchain.write_config(options)

        if stack.prometheus_enabled:
            write_prometheus_config(stack, layout.config_dir(init_dir) / "prometheus.yml")

    # ── Load ────────────────────────────────────────────────────

    def load_stack(self, name: str) -> Stack:
        """Load a stack record and select its providers.

        Raises:
            StackNotFoundError: If the stack doesn't exist.
            UnknownProviderError: If a recorded provider kind is unknown.
        """
        stack = self.repository.load(name)
        self._select_providers(stack)
        return stack

    def has_run(self) -> bool:
        return self.repository.has_run(self._require_stack().name)

    # ── Start ───────────────────────────────────────────────────

    def start_stack(self, options: StartOptions | None = None) -> bool:
        """Start the stack.

        Everything logged meanwhile also goes to the stack's log file.

        Returns:
            True if this start ran first-time setup.

        Raises:
            PortUnavailableError: Before any container command.
            SetupFailedError: First-time setup failed and was rolled back.
        """
        options = options or StartOptions()
        stack = self._require_stack()
        with stack_log(self.settings.logs_dir, stack.name):
            check_ports_available(stack_ports(stack), self.port_probe)

            if self.has_run():
                logger.info("Starting stack '%s'", stack.name)
                self._start_steady()
                return False

            logger.info("Starting stack '%s' for the first time", stack.name)
            try:
                self.run_first_time_setup()
            except Exception as e:
                if options.no_rollback:
                    raise
                step = self._step
                logger.error("an error occurred while %s - rolling back changes", step or "starting")
                logger.debug("first-time setup failure", exc_info=e)
                try:
                    self.reset_to_template()
                except Exception as reset_error:
                    raise SetupFailedError(e, self.layout.runtime_dir, reset_error, step) from e
                raise SetupFailedError(e, self.layout.runtime_dir, None, step) from e
            logger.info("First-time setup of '%s' complete", stack.name)
            return True

    def _start_steady(self) -> None:
        """Bring a previously started stack back up.  Failures propagate."""
        stack = self._require_stack()
        self.blockchain.pre_start()
        self.progress("starting FireFly dependencies")
        self.runtime.compose_up(stack.name, self.layout.compose_file(self.layout.runtime_dir))
        self.blockchain.post_start(False)
        for member in stack.external_members():
            self._wait_for_external(member, member.ports.firefly)

    def _wait_for_external(self, member: Member, port: int) -> None:
        if self.readiness_probe(port):
            return
        notice = ExternalMemberNotice(
            member.id, str(self.layout.member_config(self.layout.runtime_dir, member.id))
        )
        self.progress(notice.message())
        wait_for_port(
            port,
            self.settings.readiness_retries,
            self.settings.readiness_period,
            probe=self.readiness_probe,
            sleep=self.sleep,
        )

    # ── First-time setup ────────────────────────────────────────

    def _begin(self, step: str) -> None:
        self._step = step
        logger.info("%s", step)
        self.progress(step)

    def run_first_time_setup(self) -> None:
        """The one-time bootstrap.  Any failure aborts the remaining steps."""
        stack = self._require_stack()
        layout = self.layout
        runtime_dir = layout.runtime_dir
        runtime_compose = layout.compose_file(runtime_dir)
        config_dir = layout.config_dir(runtime_dir)
        state = StackState()

        self._begin("copying init directory to runtime")
        shutil.copytree(layout.init_dir, runtime_dir)
        if stack.database == "sqlite3" and stack.external_members():
            (runtime_dir / "data" / "sqlite").mkdir(parents=True, exist_ok=True)

        self._begin("disabling firefly core containers")
        doc = compose.read_compose(runtime_compose)
        self._entrypoints = compose.disable_entrypoints(doc, stack)
        compose.write_compose(doc, runtime_compose)

        self._begin("initializing blockchain node")
        self.blockchain.first_time_setup()

        if stack.prometheus_enabled:
            self._begin("copying prometheus config")
            self.runtime.copy_to_volume(
                self.ctx.volume("prometheus_config"),
                config_dir / "prometheus.yml",
                "prometheus.yml",
            )

        self._begin("writing data exchange certificates")
        for member in stack.members:
            self._setup_dataexchange(member)

        self._begin("starting FireFly dependencies")
        self.blockchain.pre_start()
        self.runtime.compose_up(stack.name, runtime_compose)
        self.blockchain.post_start(True)

        self._begin("deploying token contracts")
        for index, provider in enumerate(self.tokens):
            for result in provider.deploy_smart_contracts(index):
                self._record(state, result)

        if not stack.contract_address:
            self._begin("deploying FireFly contract")
            result = self.blockchain.deploy_firefly_contract()
            if result.config_patch:
                for member in stack.members:
                    logger.debug("Patching config for member %s: %s", member.id, result.config_patch)
                    patch_node_config(layout.member_config(runtime_dir, member.id), result.config_patch)
            self._record(state, result)

        self._begin("copying node configs")
        for member in stack.internal_members():
            self.runtime.copy_to_volume(
                self.ctx.volume(f"firefly_core_{member.id}"),
                layout.member_config(runtime_dir, member.id),
                "firefly.core.yml",
            )
        doc = compose.read_compose(runtime_compose)
        compose.enable_entrypoints(doc, stack, self._entrypoints)
        compose.write_compose(doc, runtime_compose)

        self._begin("starting FireFly nodes")
        self.runtime.compose_up(stack.name, runtime_compose)

        if stack.external_members():
            self._begin("waiting for external members")
            for member in stack.external_members():
                self._wait_for_external(member, member.ports.admin)
                identity.finalize_admin_config(self.http, member)

        self._begin("registering FireFly identities")
        for member in stack.members:
            identity.register_identity(
                self.http,
                member,
                retries=self.settings.registration_retries,
                period=self.settings.http_retry_period,
                sleep=self.sleep,
            )

        self._begin("initializing token providers")
        for index, provider in enumerate(self.tokens):
            provider.first_time_setup(index)

        state.first_start_completed_at = datetime.now(UTC).isoformat()
        self.repository.save_state(stack.name, state)
        self._step = ""

    def _setup_dataexchange(self, member: Member) -> None:
        """Self-signed TLS material + config for one data exchange, copied into its volume."""
        dx_dir = self.layout.config_dir(self.layout.runtime_dir) / f"dataexchange_{member.id}"
        tls = self_signed_certificate(f"dataexchange_{member.id}", f"member_{member.id}")
        tls.write(dx_dir)
        config = {
            "api": {"hostname": "0.0.0.0", "port": DATAEXCHANGE_PORT},
            "p2p": {
                "hostname": "0.0.0.0",
                "port": DATAEXCHANGE_P2P_PORT,
                "endpoint": f"https://dataexchange_{member.id}:{DATAEXCHANGE_P2P_PORT}",
            },
        }
        (dx_dir / "config.json").write_text(json.dumps(config, indent=2) + "\n", encoding="utf-8")

        volume = self.ctx.volume(f"dataexchange_{member.id}")
        self.runtime.mkdir_in_volume(volume, "peer-certs")
        for filename in ("config.json", "cert.pem", "key.pem"):
            self.runtime.copy_to_volume(volume, dx_dir / filename, filename)

    def _record(self, state: StackState, result: ContractDeploymentResult) -> None:
        state.deployed_contracts.append(result.deployed_contract)
        self.repository.save_state(self._require_stack().name, state)
        if result.message:
            self.progress(result.message)

    # ── Stop / reset / remove ───────────────────────────────────

    def stop_stack(self) -> None:
        stack = self._require_stack()
        self.runtime.compose_stop(stack.name, self.layout.active_compose_file())
        logger.info("Stopped stack '%s'", stack.name)

    def volume_names(self) -> list[str]:
        """Project-qualified names of every volume the stack uses."""
        stack = self._require_stack()
        names = compose.compose_volume_names(stack, self.blockchain, self.tokens)
        return [self.ctx.volume(name) for name in names]

    def reset_to_template(self) -> None:
        """Return the stack to its post-init state.

        Containers and volumes go, the runtime tree is deleted and each
        provider forgets what it created.  The init tree and stack
        record are never touched.

        The runtime tree is deleted even when docker fails, so the next
        start runs first-time setup again; the docker error still
        propagates.
        """
        stack = self._require_stack()
        layout = self.layout
        try:
            self.runtime.compose_down(stack.name, layout.active_compose_file(), volumes=True)
            for volume in self.volume_names():
                self.runtime.remove_volume(volume)
        finally:
            if layout.runtime_dir.exists():
                shutil.rmtree(layout.runtime_dir)
            self.blockchain.reset()
        logger.info("Reset stack '%s'", stack.name)

    def reset_stack(self) -> None:
        self.reset_to_template()

    def remove_stack(self) -> None:
        """Reset, then delete the stack directory, record and log."""
        stack = self._require_stack()
        self.reset_to_template()
        self.repository.delete(stack.name)
        stack_log_path(self.settings.logs_dir, stack.name).unlink(missing_ok=True)
        self.stack = self.ctx = self.blockchain = None
        self.tokens = []

    # ── Supplementary operations ────────────────────────────────

    def list_stacks(self) -> list[str]:
        return self.repository.list_names()

    def images(self) -> list[str]:
        """Every image the stack pulls, de-duplicated, in pull order."""
        stack = self._require_stack()
        local = {e.image_ref() for e in stack.version_manifest.entries() if e.local}
        images = [e.image_ref() for e in stack.version_manifest.entries() if not e.local]
        images.append(compose.IPFS_IMAGE)
        if stack.database == "postgres":
            images.append(compose.POSTGRES_IMAGE)
        if stack.prometheus_enabled:
            images.append(compose.PROMETHEUS_IMAGE)
        for definition in compose.provider_definitions(self.blockchain, self.tokens):
            images.append(definition.service.image)

        unique = []
        for image in images:
            if image not in unique and image not in local:
                unique.append(image)
        return unique

    def pull_stack(self, retries: int | None = None) -> list[str]:
        """Pull every image, retrying each pull."""
        budget = self.settings.pull_retries if retries is None else retries
        pulled = []
        for image in self.images():
            self.progress(f"pulling '{image}'")
            retry(
                lambda image=image: self.runtime.pull_image(image),
                budget,
                self.settings.http_retry_period,
                description=f"pull {image}",
                retry_on=(StackError,),
                sleep=self.sleep,
            )
            pulled.append(image)
        return pulled

    def stack_info(self) -> str:
        stack = self._require_stack()
        return self.runtime.compose_ps(stack.name, self.layout.active_compose_file())

    def stack_logs(self, tail: int | None = None) -> str:
        stack = self._require_stack()
        return self.runtime.compose_logs(stack.name, self.layout.active_compose_file(), tail=tail)

    def accounts(self) -> list[dict[str, Any]]:
        return [
            {
                "member": m.id,
                "address": m.address,
                "org_name": m.org_name,
                "node_name": m.node_name,
                "external": m.external,
            }
            for m in self._require_stack().members
        ]

    def get_contracts(self, filename: str) -> list[str]:
        self._require_stack()
        return self.blockchain.get_contracts(filename)

    def deploy_contract(
        self,
        filename: str,
        contract_name: str,
        member_index: int = 0,
        extra_args: list[str] | None = None,
    ) -> ContractDeploymentResult:
        """Deploy a custom contract on a running stack.

        The deployment is appended to the runtime state.
        """
        stack = self._require_stack()
        if not self.has_run():
            raise StackError(f"stack '{stack.name}' has not been started")
        try:
            member = stack.member(member_index)
        except IndexError as e:
            raise InvalidSelectionError(str(e)) from e

        result = self.blockchain.deploy_contract(filename, contract_name, member, extra_args or [])
        state = self.repository.load_state(stack.name)
        state.deployed_contracts.append(result.deployed_contract)
        self.repository.save_state(stack.name, state)
        return result

    def deployed_contracts(self) -> StackState:
        return self.repository.load_state(self._require_stack().name)
