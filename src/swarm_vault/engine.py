"""Engine wiring: builds the driver and poller from settings."""
from __future__ import annotations

import logging
from typing import Any, Awaitable, Callable, Mapping, Optional, Sequence

from .cache import TTLCache
from .config import SwarmVaultSettings, get_settings
from .context import RPCWalletContextProvider, WalletContextProvider
from .driver import ExecutionDriver
from .erc4337 import (
    BundlerClient,
    BundlerConfig,
    BundlerService,
    ERC4337Bundler,
    PaymasterClient,
    PaymasterConfig,
)
from .exceptions import ConfigurationError
from .logging_utils import setup_logging_from_settings
from .models import Member, PreparedMemberCalls, TransactionStatusView
from .poller import ConfirmationPoller
from .rpc_client import ChainRPCClient
from .signing import LitThresholdSigner, ThresholdSigner
from .store import InMemoryTransactionStore, TransactionStore

logger = logging.getLogger(__name__)


class SwarmEngine:
    """Execution driver plus confirmation poller, sharing one store."""

    def __init__(
        self,
        driver: ExecutionDriver,
        poller: ConfirmationPoller,
        closers: Sequence[Callable[[], Awaitable[None]]] = (),
    ):
        self.driver = driver
        self.poller = poller
        self._closers = list(closers)

    @classmethod
    def from_settings(
        cls,
        settings: Optional[SwarmVaultSettings] = None,
        *,
        store: Optional[TransactionStore] = None,
        signer: Optional[ThresholdSigner] = None,
        context_provider: Optional[WalletContextProvider] = None,
        bundler: Optional[BundlerService] = None,
    ) -> "SwarmEngine":
        """Build an engine, using JSON-RPC collaborators for anything not given.

        Applies the logging section of the settings before wiring anything.
        """
        settings = settings or get_settings()
        setup_logging_from_settings(settings.logging)
        chain = settings.chain
        closers: list[Callable[[], Awaitable[None]]] = []

        rpc = ChainRPCClient(chain.rpc_url, timeout_seconds=chain.request_timeout_seconds)
        closers.append(rpc.close)

        if context_provider is None:
            context_provider = RPCWalletContextProvider(
                rpc, cache=TTLCache(settings.context_cache_ttl_seconds)
            )

        if bundler is None:
            if not chain.bundler_url:
                raise ConfigurationError("chain.bundler_url is required")
            paymaster = None
            if chain.paymaster_url:
                paymaster = PaymasterClient(
                    PaymasterConfig(url=chain.paymaster_url, timeout_seconds=chain.request_timeout_seconds)
                )
            erc4337 = ERC4337Bundler(
                BundlerClient(BundlerConfig(url=chain.bundler_url, timeout_seconds=chain.request_timeout_seconds)),
                rpc,
                entrypoint=chain.entrypoint,
                chain_id=chain.chain_id,
                paymaster=paymaster,
            )
            closers.append(erc4337.close)
            bundler = erc4337

        if signer is None:
            lit_signer = LitThresholdSigner.from_settings(settings.lit)
            closers.append(lit_signer.close)
            signer = lit_signer

        store = store or InMemoryTransactionStore()
        driver = ExecutionDriver(
            store,
            context_provider,
            signer,
            bundler,
            settings=settings.execution,
            default_key_handle=settings.lit.default_key_handle or None,
        )
        poller = ConfirmationPoller(store, bundler, settings=settings.poller)

        logger.info(
            "Engine configured (chain_id=%d, environment=%s, zero_balance_policy=%s)",
            chain.chain_id, settings.environment, settings.execution.zero_balance_policy.value,
        )
        return cls(driver, poller, closers)

    async def start(self) -> None:
        await self.poller.start()

    async def stop(self) -> None:
        """Let in-flight dispatches finish, then stop polling and close clients."""
        await self.driver.drain()
        await self.poller.stop()
        for close in self._closers:
            await close()

    async def __aenter__(self) -> "SwarmEngine":
        await self.start()
        return self

    async def __aexit__(self, *exc_info) -> None:
        await self.stop()

    async def dispatch(self, template: Mapping[str, Any], members: Sequence[Member]) -> str:
        return await self.driver.dispatch(template, members)

    async def dispatch_prepared(
        self,
        prepared: Sequence[PreparedMemberCalls],
        template_snapshot: Optional[Mapping[str, Any]] = None,
    ) -> str:
        return await self.driver.dispatch_prepared(prepared, template_snapshot)

    async def get_status(self, transaction_id: str) -> TransactionStatusView:
        return await self.driver.get_status(transaction_id)
