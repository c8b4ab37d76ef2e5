"""
In-memory transaction queue.

Keeps queued transactions in insertion order. Status rules live in the
engine; the store only holds records.
"""

from typing import Iterable, Iterator, Optional

import structlog

from ..models import QueuedTransaction, QueueStats, TransactionStatus

logger = structlog.get_logger()


class QueueStore:
    """
    Ordered collection of QueuedTransaction records keyed by id.

    dicts keep insertion order, which is the queue order.
    """

    def __init__(self):
        self._transactions: dict[str, QueuedTransaction] = {}

    def __len__(self) -> int:
        return len(self._transactions)

    def __iter__(self) -> Iterator[QueuedTransaction]:
        return iter(list(self._transactions.values()))

    def __contains__(self, tx_id: str) -> bool:
        return tx_id in self._transactions

    def add(self, transaction: QueuedTransaction) -> None:
        if transaction.id in self._transactions:
            raise ValueError(f"Duplicate transaction id {transaction.id}")
        self._transactions[transaction.id] = transaction

    def get(self, tx_id: str) -> Optional[QueuedTransaction]:
        return self._transactions.get(tx_id)

    def update(self, tx_id: str, **changes) -> Optional[QueuedTransaction]:
        """Replace the record with a copy carrying the given field changes."""
        current = self._transactions.get(tx_id)
        if current is None:
            return None
        updated = current.model_copy(update=changes)
        self._transactions[tx_id] = updated
        return updated

    def remove(self, tx_id: str) -> bool:
        return self._transactions.pop(tx_id, None) is not None

    def remove_with_status(self, statuses: Iterable[TransactionStatus]) -> int:
        """Drop every record in one of statuses, keeping the order of the rest."""
        drop = set(statuses)
        before = len(self._transactions)
        self._transactions = {
            tx_id: tx for tx_id, tx in self._transactions.items() if tx.status not in drop
        }
        return before - len(self._transactions)

    def clear(self) -> int:
        count = len(self._transactions)
        self._transactions = {}
        return count

    def with_status(self, status: TransactionStatus) -> list[QueuedTransaction]:
        return [tx for tx in self._transactions.values() if tx.status == status]

    def pending(self) -> list[QueuedTransaction]:
        return self.with_status(TransactionStatus.PENDING)

    def snapshot(self) -> list[QueuedTransaction]:
        return list(self._transactions.values())

    def get_stats(self) -> QueueStats:
        stats = QueueStats()
        for tx in self._transactions.values():
            if tx.status == TransactionStatus.PENDING:
                stats.pending += 1
            elif tx.status == TransactionStatus.PROCESSING:
                stats.processing += 1
            elif tx.status == TransactionStatus.COMPLETED:
                stats.completed += 1
            elif tx.status == TransactionStatus.FAILED:
                stats.failed += 1
            elif tx.status == TransactionStatus.CANCELLED:
                stats.cancelled += 1
        return stats
