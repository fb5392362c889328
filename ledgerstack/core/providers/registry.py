"""
Provider registry — kind string → provider class.

The stack record only stores provider kinds.  Every command resolves
them here exactly once, right after loading the stack; from then on the
orchestrator only talks to the returned objects.
"""

from __future__ import annotations

import logging

from ledgerstack.core.errors import UnknownProviderError
from ledgerstack.core.providers.base import BlockchainProvider, ProviderContext, TokenProvider
from ledgerstack.core.providers.ethereum.besu import BesuProvider
from ledgerstack.core.providers.ethereum.geth import GethProvider
from ledgerstack.core.providers.ethereum.remoterpc import RemoteRPCProvider
from ledgerstack.core.providers.fabric.provider import FabricProvider
from ledgerstack.core.providers.tokens import ERC20ERC721Provider, ERC1155Provider

logger = logging.getLogger(__name__)


class ProviderRegistry:
    """Lookup table for blockchain and token provider classes."""

    def __init__(self):
        self._blockchain: dict[str, type[BlockchainProvider]] = {}
        self._tokens: dict[str, type[TokenProvider]] = {}

    def register_blockchain(self, cls: type[BlockchainProvider]) -> None:
        if cls.kind in self._blockchain:
            logger.warning("Overwriting blockchain provider: %s", cls.kind)
        self._blockchain[cls.kind] = cls

    def register_tokens(self, cls: type[TokenProvider]) -> None:
        if cls.kind in self._tokens:
            logger.warning("Overwriting token provider: %s", cls.kind)
        self._tokens[cls.kind] = cls

    def blockchain_kinds(self) -> list[str]:
        return list(self._blockchain)

    def token_kinds(self) -> list[str]:
        return list(self._tokens)

    def check_blockchain(self, kind: str) -> type[BlockchainProvider]:
        """Raises UnknownProviderError for an unregistered kind."""
        cls = self._blockchain.get(kind)
        if cls is None:
            raise UnknownProviderError("blockchain", kind, self.blockchain_kinds())
        return cls

    def check_tokens(self, kind: str) -> type[TokenProvider]:
        cls = self._tokens.get(kind)
        if cls is None:
            raise UnknownProviderError("token", kind, self.token_kinds())
        return cls

    def blockchain_provider(self, ctx: ProviderContext) -> BlockchainProvider:
        """Instantiate the stack's blockchain provider."""
        cls = self.check_blockchain(ctx.stack.blockchain_provider)
        logger.debug("Selected blockchain provider %s for '%s'", cls.kind, ctx.stack.name)
        return cls(ctx)

    def token_providers(
        self,
        ctx: ProviderContext,
        blockchain: BlockchainProvider,
    ) -> list[TokenProvider]:
        """Instantiate the stack's token providers, in registration order."""
        providers = []
        for kind in ctx.stack.token_providers:
            cls = self.check_tokens(kind)
            providers.append(cls(ctx, blockchain))
        return providers


def default_registry() -> ProviderRegistry:
    """Registry with every built-in provider."""
    registry = ProviderRegistry()
    for blockchain in (GethProvider, BesuProvider, FabricProvider, RemoteRPCProvider):
        registry.register_blockchain(blockchain)
    for tokens in (ERC1155Provider, ERC20ERC721Provider):
        registry.register_tokens(tokens)
    return registry
