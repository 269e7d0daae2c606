"""
Multi-target execution driver.

One dispatch fans a single action out to many member wallets. Each member is
processed independently:

1. fetch the wallet context (balances, block time)
2. resolve and encode the template for that wallet
3. build the account operation through the bundler
4. obtain the delegated signature over the operation hash
5. submit, leaving the target SUBMITTED for the confirmation poller

A failure at any step fails only that member's target. The transaction's
aggregate status is always derived from its targets.
"""
from __future__ import annotations

import asyncio
import logging
from typing import Any, Awaitable, Callable, Mapping, Optional, Sequence, TypeVar, Union

from .config import ExecutionSettings, ZeroBalancePolicy
from .context import WalletContextProvider
from .erc4337.service import BundlerService
from .exceptions import (
    InvalidStatusTransitionError,
    NotFoundError,
    SigningError,
    StageTimeoutError,
    SwarmVaultError,
    ZeroBalanceError,
)
from .logging_utils import log_target_event
from .models import (
    Member,
    PreparedMemberCalls,
    ResolvedCall,
    TargetStatus,
    Transaction,
    TransactionKind,
    TransactionStatusView,
    TransactionTarget,
)
from .signing.account import DelegatedSigningAccount, ThresholdSigner
from .store import TransactionStore
from .template.encoder import resolve_template
from .template.models import AbiTemplate, RawTemplate
from .template.resolver import zero_balance_placeholders
from .template.validator import ValidatedTemplate, validate_template

logger = logging.getLogger(__name__)

T = TypeVar("T")


def _error_message(exc: BaseException) -> str:
    return str(exc) or type(exc).__name__


class ExecutionDriver:
    """Creates transactions and runs their per-member pipelines.

    Dispatches run as detached tasks; ``dispatch`` returns as soon as the
    transaction record exists. Per-member work across all dispatches shares
    one concurrency limit.
    """

    def __init__(
        self,
        store: TransactionStore,
        context_provider: WalletContextProvider,
        signer: ThresholdSigner,
        bundler: BundlerService,
        settings: Optional[ExecutionSettings] = None,
        default_key_handle: Optional[str] = None,
    ):
        self._store = store
        self._context = context_provider
        self._signer = signer
        self._bundler = bundler
        self._settings = settings or ExecutionSettings()
        self._default_key_handle = default_key_handle
        self._semaphore = asyncio.Semaphore(self._settings.max_concurrency)
        self._tasks: dict[str, asyncio.Task] = {}

    # ------------------------------------------------------------------
    # Public operations
    # ------------------------------------------------------------------

    async def dispatch(
        self,
        template: Union[Mapping[str, Any], AbiTemplate, RawTemplate],
        members: Sequence[Member],
    ) -> str:
        """Validate a template and start executing it for every member.

        Raises:
            TemplateValidationError: the template is invalid; nothing is stored.
        """
        validated = validate_template(template)

        txn = await self._store.create_transaction(
            Transaction(
                kind=TransactionKind.TEMPLATE,
                template=validated.template.to_payload(),
                member_count=len(members),
            )
        )
        logger.info(
            "Dispatching transaction %s to %d member(s)", txn.transaction_id, len(members)
        )

        jobs = [
            (lambda m=member: self._run_template_member(txn.transaction_id, validated, m))
            for member in members
        ]
        self.spawn_dispatch(txn.transaction_id, jobs)
        return txn.transaction_id

    async def dispatch_prepared(
        self,
        prepared: Sequence[PreparedMemberCalls],
        template_snapshot: Optional[Mapping[str, Any]] = None,
    ) -> str:
        """Execute calls already built per member (e.g. from a swap quote)."""
        txn = await self._store.create_transaction(
            Transaction(
                kind=TransactionKind.PREPARED,
                template=dict(template_snapshot or {}),
                member_count=len(prepared),
            )
        )
        logger.info(
            "Dispatching prepared transaction %s to %d member(s)",
            txn.transaction_id, len(prepared),
        )

        jobs = [
            (lambda p=item: self._run_prepared_member(txn.transaction_id, p))
            for item in prepared
        ]
        self.spawn_dispatch(txn.transaction_id, jobs)
        return txn.transaction_id

    def spawn_dispatch(
        self,
        transaction_id: str,
        jobs: Sequence[Callable[[], Awaitable[None]]],
    ) -> asyncio.Task:
        """Run member jobs in a detached task that finalizes the transaction."""
        task = asyncio.create_task(
            self._run_dispatch(transaction_id, jobs),
            name=f"dispatch-{transaction_id}",
        )
        self._tasks[transaction_id] = task
        task.add_done_callback(lambda _: self._tasks.pop(transaction_id, None))
        return task

    async def wait_for_dispatch(self, transaction_id: str) -> None:
        """Wait until every member of a dispatch has been processed."""
        task = self._tasks.get(transaction_id)
        if task is not None:
            await task

    async def drain(self) -> None:
        """Wait for all in-flight dispatches."""
        tasks = list(self._tasks.values())
        if tasks:
            await asyncio.gather(*tasks, return_exceptions=True)

    async def get_status(self, transaction_id: str) -> TransactionStatusView:
        txn = await self._store.get_transaction(transaction_id)
        if txn is None:
            raise NotFoundError("Transaction", transaction_id)
        targets = await self._store.list_targets(transaction_id=transaction_id)
        return TransactionStatusView(transaction=txn, targets=targets)

    async def refresh_transaction_status(self, transaction_id: str) -> Transaction:
        return await self._store.refresh_transaction_status(transaction_id)

    # ------------------------------------------------------------------
    # Dispatch internals
    # ------------------------------------------------------------------

    async def _run_dispatch(
        self,
        transaction_id: str,
        jobs: Sequence[Callable[[], Awaitable[None]]],
    ) -> None:
        try:
            results = await asyncio.gather(
                *(self._bounded(transaction_id, job) for job in jobs),
                return_exceptions=True,
            )
            for result in results:
                if isinstance(result, Exception):
                    logger.error(
                        "Member job for transaction %s failed outside its target: %s",
                        transaction_id, result,
                    )
        finally:
            txn = await self._store.mark_dispatch_finished(transaction_id)
            logger.info(
                "Dispatch of transaction %s finished, status=%s",
                transaction_id, txn.status.value,
            )

    async def _bounded(self, transaction_id: str, job: Callable[[], Awaitable[None]]) -> None:
        async with self._semaphore:
            await job()
        await self._store.refresh_transaction_status(transaction_id)

    async def _with_timeout(self, awaitable: Awaitable[T], seconds: float, stage: str) -> T:
        try:
            return await asyncio.wait_for(awaitable, timeout=seconds)
        except asyncio.TimeoutError:
            raise StageTimeoutError(stage, seconds) from None

    async def _record_failure(
        self,
        transaction_id: str,
        member: Member,
        error: BaseException,
    ) -> None:
        message = _error_message(error)
        await self._store.create_target(
            TransactionTarget(
                transaction_id=transaction_id,
                member_id=member.member_id,
                wallet_address=member.wallet_address,
                status=TargetStatus.FAILED,
                error=message,
            )
        )
        log_target_event(
            "failed", transaction_id, member.member_id,
            wallet_address=member.wallet_address, error=message,
        )

    async def _run_template_member(
        self,
        transaction_id: str,
        validated: ValidatedTemplate,
        member: Member,
    ) -> None:
        settings = self._settings
        try:
            context = await self._with_timeout(
                self._context.get_context(member.wallet_address, validated.token_addresses),
                settings.context_timeout_seconds,
                "wallet context fetch",
            )

            drained = zero_balance_placeholders(list(validated.placeholders), context)
            if drained and settings.zero_balance_policy is not ZeroBalancePolicy.ALLOW:
                if settings.zero_balance_policy is ZeroBalancePolicy.EXCLUDE:
                    log_target_event(
                        "excluded", transaction_id, member.member_id,
                        wallet_address=member.wallet_address,
                    )
                    return
                raise ZeroBalanceError(drained)

            call = resolve_template(validated.template, context)
        except SwarmVaultError as e:
            await self._record_failure(transaction_id, member, e)
            return
        except Exception as e:
            logger.exception("Unexpected error resolving for member %s", member.member_id)
            await self._record_failure(transaction_id, member, e)
            return

        await self._execute_calls(transaction_id, member, (call,))

    async def _run_prepared_member(
        self,
        transaction_id: str,
        prepared: PreparedMemberCalls,
    ) -> None:
        member = prepared.member
        if prepared.error:
            await self._record_failure(transaction_id, member, SwarmVaultError(prepared.error))
            return
        if not prepared.calls:
            await self._record_failure(
                transaction_id, member, SwarmVaultError("no calls to execute")
            )
            return
        await self._execute_calls(transaction_id, member, tuple(prepared.calls))

    async def _execute_calls(
        self,
        transaction_id: str,
        member: Member,
        calls: tuple[ResolvedCall, ...],
    ) -> None:
        settings = self._settings
        target = await self._store.create_target(
            TransactionTarget(
                transaction_id=transaction_id,
                member_id=member.member_id,
                wallet_address=member.wallet_address,
                calls=calls,
            )
        )

        try:
            key_handle = member.key_handle or self._default_key_handle
            if not key_handle:
                raise SigningError("No signing key configured for member")

            prepared = await self._with_timeout(
                self._bundler.prepare_operation(member.wallet_address, calls),
                settings.bundler_timeout_seconds,
                "bundler prepare",
            )
            account = DelegatedSigningAccount(self._signer, key_handle)
            signature = await self._with_timeout(
                account.sign_message(prepared.operation_hash),
                settings.signer_timeout_seconds,
                "delegated signing",
            )
            handle = await self._with_timeout(
                self._bundler.submit(prepared, signature),
                settings.bundler_timeout_seconds,
                "bundler submit",
            )
        except Exception as e:
            if not isinstance(e, SwarmVaultError):
                logger.exception("Unexpected error executing for member %s", member.member_id)
            message = _error_message(e)
            await self._store.update_target(
                target.target_id, status=TargetStatus.FAILED, error=message
            )
            log_target_event(
                "failed", transaction_id, member.member_id,
                wallet_address=member.wallet_address, error=message,
            )
            return

        try:
            await self._store.update_target(
                target.target_id, status=TargetStatus.SUBMITTED, user_op_hash=handle
            )
        except InvalidStatusTransitionError:
            # Closed by the poller while in flight; the operation may still land
            await self._store.update_target(target.target_id, user_op_hash=handle)
            log_target_event(
                "submitted_after_close", transaction_id, member.member_id,
                wallet_address=member.wallet_address, handle=handle,
                error="target closed before submission completed",
            )
            return
        log_target_event(
            "submitted", transaction_id, member.member_id,
            wallet_address=member.wallet_address, handle=handle,
        )
