"""
Transaction Queue Engine: drains queued transactions one at a time.

Lifecycle of a drain pass:
1. Snapshot the pending entries (later additions wait for the next pass)
2. Check the pause flag; stop if set
3. Mark the entry processing and await the injected submit
4. Mark completed (with hash) or failed (with error)
5. Sleep the inter-transaction delay
6. Repeat
"""

import asyncio
from typing import Awaitable, Callable, Optional

import structlog

from ..errors import TransactionSubmissionFailed
from ..history import HistoryEntry, TransactionHistoryStore
from ..models import (
    MAX_RETRY_ATTEMPTS,
    TERMINAL_STATUSES,
    EventKind,
    QueuedTransaction,
    QueueEvent,
    QueueRunState,
    QueueStats,
    RefusalReason,
    TransactionStatus,
)
from .events import EventSink, StructlogSink
from .store import QueueStore

logger = structlog.get_logger()

SubmitFn = Callable[[QueuedTransaction], Awaitable[str]]

TX_DELAY_SECONDS = 1.0

SUBMISSION_CANCELLED = "Submission cancelled"


class TransactionQueueEngine:
    """
    Sequential submitter for a batch of transactions.

    Features:
    - At most one submission in flight; order is preserved
    - Pause takes effect between entries, never mid-submission
    - Failed entries never stop the pass
    - Explicit retry bounded by max_retry_attempts
    - Every state-relevant change is reported to the event sink

    Mutations that are not allowed in the current state return False and
    emit a refusal event instead of raising.
    """

    def __init__(
        self,
        submit: SubmitFn,
        sink: Optional[EventSink] = None,
        store: Optional[QueueStore] = None,
        history: Optional[TransactionHistoryStore] = None,
        tx_delay: float = TX_DELAY_SECONDS,
        max_retry_attempts: int = MAX_RETRY_ATTEMPTS,
        chain_id: Optional[int] = None,
    ):
        self.submit = submit
        self.sink = sink or StructlogSink()
        self.store = store or QueueStore()
        self.history = history
        self.tx_delay = tx_delay
        self.max_retry_attempts = max_retry_attempts
        self.chain_id = chain_id

        self._state = QueueRunState()
        self._running = False
        self._pause_requested = False

    @property
    def queue(self) -> list[QueuedTransaction]:
        return self.store.snapshot()

    @property
    def state(self) -> QueueRunState:
        return self._state.model_copy()

    @property
    def is_running(self) -> bool:
        return self._running

    def get(self, tx_id: str) -> Optional[QueuedTransaction]:
        return self.store.get(tx_id)

    def stats(self) -> QueueStats:
        return self.store.get_stats()

    def _emit(
        self,
        kind: EventKind,
        message: str,
        tx_id: Optional[str] = None,
        reason: Optional[RefusalReason] = None,
    ) -> None:
        event = QueueEvent(kind=kind, message=message, transaction_id=tx_id, reason=reason)
        try:
            self.sink(event)
        except Exception as e:
            logger.error("Event sink failed", kind=kind.value, error=str(e))

    # Queue mutations

    def enqueue(self, to: str, value: int, description: str, data: Optional[str] = None) -> str:
        transaction = QueuedTransaction(to=to, value=value, description=description, data=data)
        self.store.add(transaction)

        logger.debug("Transaction enqueued", transaction_id=transaction.id, to=to, value=value)
        self._emit(
            EventKind.ENQUEUED,
            f"{description} added to transaction queue",
            transaction.id,
        )
        return transaction.id

    def remove(self, tx_id: str) -> bool:
        transaction = self.store.get(tx_id)
        if transaction is None:
            self._emit(EventKind.REMOVE_REFUSED, "Transaction not found", tx_id, RefusalReason.NOT_FOUND)
            return False

        if transaction.status == TransactionStatus.PROCESSING:
            reason = RefusalReason.TRANSACTION_PROCESSING
        elif self._running:
            reason = RefusalReason.QUEUE_PROCESSING
        else:
            reason = None

        if reason is not None:
            self._emit(
                EventKind.REMOVE_REFUSED,
                "Cannot remove transaction while processing",
                tx_id,
                reason,
            )
            return False

        self.store.remove(tx_id)
        self._emit(EventKind.REMOVED, f"{transaction.description} removed from queue", tx_id)
        return True

    def retry(self, tx_id: str) -> bool:
        """Return a failed entry to pending. Does not start a pass."""
        transaction = self.store.get(tx_id)
        if transaction is None:
            self._emit(EventKind.RETRY_REFUSED, "Transaction not found", tx_id, RefusalReason.NOT_FOUND)
            return False

        if transaction.status != TransactionStatus.FAILED:
            self._emit(
                EventKind.RETRY_REFUSED,
                "Only failed transactions can be retried",
                tx_id,
                RefusalReason.NOT_FAILED,
            )
            return False

        if transaction.retry_count >= self.max_retry_attempts:
            self._emit(
                EventKind.MAX_RETRIES_REACHED,
                f"Cannot retry {transaction.description} anymore",
                tx_id,
                RefusalReason.MAX_RETRIES_REACHED,
            )
            return False

        self.store.update(
            tx_id,
            status=TransactionStatus.PENDING,
            error=None,
            retry_count=transaction.retry_count + 1,
        )
        self._emit(EventKind.RETRY, f"Retrying {transaction.description}", tx_id)
        return True

    def cancel(self, tx_id: str) -> bool:
        transaction = self.store.get(tx_id)
        if transaction is None or transaction.status != TransactionStatus.PENDING:
            reason = RefusalReason.NOT_FOUND if transaction is None else RefusalReason.NOT_PENDING
            self._emit(
                EventKind.CANCEL_REFUSED,
                "Only pending transactions can be cancelled",
                tx_id,
                reason,
            )
            return False

        self.store.update(tx_id, status=TransactionStatus.CANCELLED)
        self._emit(EventKind.CANCELLED, f"{transaction.description} cancelled", tx_id)
        return True

    def clear_completed(self) -> int:
        """Drop completed, cancelled and failed entries. Returns how many went."""
        removed = self.store.remove_with_status(TERMINAL_STATUSES)
        if removed:
            self._emit(EventKind.CLEARED, f"Cleared {removed} finished transactions")
        return removed

    def clear_all(self) -> bool:
        if self._running:
            self._emit(
                EventKind.CLEAR_REFUSED,
                "Cannot clear queue while processing",
                reason=RefusalReason.QUEUE_PROCESSING,
            )
            return False

        removed = self.store.clear()
        self._state = QueueRunState()
        self._pause_requested = False
        self._emit(EventKind.CLEARED, f"Cleared {removed} transactions")
        return True

    # Drain loop

    def pause(self) -> bool:
        """Ask the running pass to stop before its next entry."""
        if not self._running:
            return False

        self._pause_requested = True
        self._state.is_paused = True
        logger.info("Queue pause requested", current_index=self._state.current_index)
        return True

    async def resume(self) -> bool:
        """Clear the pause flag and start a new pass over what is still pending."""
        was_paused = self._pause_requested or self._state.is_paused
        self._pause_requested = False
        self._state.is_paused = False

        if was_paused:
            self._emit(EventKind.PASS_RESUMED, "Resuming transaction processing")

        return await self.process_queue()

    async def process_queue(self) -> bool:
        """
        Run one drain pass over the entries pending right now.

        Returns False without doing anything if a pass is already running
        or nothing is pending.
        """
        # Checked and set before the first await
        if self._running:
            logger.debug("Drain pass already running")
            return False

        snapshot = [tx.id for tx in self.store.pending()]
        if not snapshot:
            logger.debug("Nothing pending to process")
            return False

        self._running = True
        self._pause_requested = False
        self._state = QueueRunState(is_processing=True, current_index=0)

        logger.info("Drain pass started", pending=len(snapshot))
        self._emit(EventKind.PASS_STARTED, f"Processing {len(snapshot)} transactions")

        paused = False
        try:
            for index, tx_id in enumerate(snapshot):
                if self._pause_requested:
                    paused = True
                    self._state.current_index = index
                    break

                transaction = self.store.get(tx_id)
                if transaction is None or transaction.status != TransactionStatus.PENDING:
                    # Cancelled or removed since the snapshot was taken
                    logger.debug("Skipping transaction", transaction_id=tx_id)
                    continue

                self._state.current_index = index

                if await self._process_transaction(transaction):
                    self._state.completed += 1
                else:
                    self._state.failed += 1

                if index < len(snapshot) - 1 and not self._pause_requested:
                    await asyncio.sleep(self.tx_delay)
        finally:
            self._running = False
            self._state.is_processing = False

            if paused:
                self._state.is_paused = True
                logger.info(
                    "Drain pass paused",
                    current_index=self._state.current_index,
                    completed=self._state.completed,
                    failed=self._state.failed,
                )
                self._emit(EventKind.PASS_PAUSED, "Transaction processing paused")
            else:
                self._state.is_paused = False
                self._state.current_index = -1
                self._pause_requested = False
                logger.info(
                    "Drain pass complete",
                    completed=self._state.completed,
                    failed=self._state.failed,
                )
                self._emit(
                    EventKind.PASS_COMPLETED,
                    f"Processed {self._state.completed} transactions, {self._state.failed} failed",
                )

        return True

    async def _process_transaction(self, transaction: QueuedTransaction) -> bool:
        processing = self.store.update(transaction.id, status=TransactionStatus.PROCESSING)

        try:
            tx_hash = await self.submit(processing)
            if not tx_hash:
                raise TransactionSubmissionFailed("Transaction failed to send")
        except asyncio.CancelledError:
            # The entry must not stay processing once the pass is gone
            self.store.update(transaction.id, status=TransactionStatus.FAILED, error=SUBMISSION_CANCELLED)
            self._state.failed += 1
            logger.warning("Transaction submission cancelled", transaction_id=transaction.id)
            self._emit(
                EventKind.TX_FAILED,
                f"{transaction.description}: {SUBMISSION_CANCELLED}",
                transaction.id,
            )
            raise
        except Exception as e:
            message = str(e) or type(e).__name__
            self.store.update(transaction.id, status=TransactionStatus.FAILED, error=message)
            logger.warning(
                "Transaction failed",
                transaction_id=transaction.id,
                retry_count=transaction.retry_count,
                error=message,
            )
            self._emit(EventKind.TX_FAILED, f"{transaction.description}: {message}", transaction.id)
            return False

        self.store.update(transaction.id, status=TransactionStatus.COMPLETED, hash=tx_hash, error=None)
        logger.info("Transaction submitted", transaction_id=transaction.id, tx_hash=tx_hash)
        self._emit(EventKind.TX_SUCCEEDED, transaction.description, transaction.id)

        if self.history is not None:
            try:
                self.history.save(
                    HistoryEntry(
                        hash=tx_hash,
                        to=transaction.to,
                        value=transaction.value,
                        description=transaction.description,
                        chain_id=self.chain_id,
                    )
                )
            except Exception as e:
                logger.error("Failed to record transaction history", tx_hash=tx_hash, error=str(e))

        return True
