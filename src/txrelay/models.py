"""
Queue records shared by the engine, the store and the notification sinks.

Design principles:
- One record per queued transaction, identified by an immutable id
- Transaction fields (to, value, data) are opaque to the engine
- Serializable to JSON for diagnostics and host UIs
"""

import random
import string
import time
from enum import Enum
from typing import Optional

import orjson
from pydantic import BaseModel, ConfigDict, Field, field_serializer

MAX_RETRY_ATTEMPTS = 2

_ID_ALPHABET = string.ascii_lowercase + string.digits


def now_ms() -> int:
    return int(time.time() * 1000)


def new_transaction_id() -> str:
    """Time plus a random base36 suffix, e.g. 'tx-1718000000000-k3j9x0q1z'."""
    suffix = "".join(random.choices(_ID_ALPHABET, k=9))
    return f"tx-{now_ms()}-{suffix}"


class TransactionStatus(str, Enum):
    PENDING = "pending"
    PROCESSING = "processing"
    COMPLETED = "completed"
    FAILED = "failed"
    CANCELLED = "cancelled"


TERMINAL_STATUSES = frozenset(
    {TransactionStatus.COMPLETED, TransactionStatus.FAILED, TransactionStatus.CANCELLED}
)


class QueuedTransaction(BaseModel):
    """
    A transaction intent waiting in (or already drained from) the queue.

    Status transitions are made by TransactionQueueEngine only. Records are
    frozen; the store swaps in updated copies.
    """
    model_config = ConfigDict(frozen=True)

    id: str = Field(default_factory=new_transaction_id, description="Unique id, set at enqueue time")
    to: str = Field(description="Recipient address")
    value: int = Field(description="Amount in wei")
    data: Optional[str] = Field(default=None, description="Optional hex payload")
    description: str = Field(description="Human readable label")

    status: TransactionStatus = Field(default=TransactionStatus.PENDING)
    hash: Optional[str] = Field(default=None, description="Set once the network accepted the tx")
    error: Optional[str] = Field(default=None, description="Set only when status is failed")
    retry_count: int = Field(default=0)
    timestamp: int = Field(default_factory=now_ms, description="Creation time in ms")

    @field_serializer("value", when_used="json")
    def _value_as_string(self, value: int) -> str:
        # Wei amounts overflow 64-bit JSON integers
        return str(value)

    def to_json(self) -> bytes:
        return orjson.dumps(self.model_dump(mode="json"))

    @classmethod
    def from_json(cls, data: bytes) -> "QueuedTransaction":
        return cls.model_validate(orjson.loads(data))


class QueueRunState(BaseModel):
    """State of the drain loop. Owned by the engine, handed out as copies."""
    is_processing: bool = False
    is_paused: bool = False
    current_index: int = -1
    completed: int = 0
    failed: int = 0


class QueueStats(BaseModel):
    pending: int = 0
    processing: int = 0
    completed: int = 0
    failed: int = 0
    cancelled: int = 0

    @property
    def total(self) -> int:
        return self.pending + self.processing + self.completed + self.failed + self.cancelled


class EventKind(str, Enum):
    ENQUEUED = "enqueued"
    PASS_STARTED = "pass_started"
    PASS_PAUSED = "pass_paused"
    PASS_RESUMED = "pass_resumed"
    PASS_COMPLETED = "pass_completed"
    TX_SUCCEEDED = "tx_succeeded"
    TX_FAILED = "tx_failed"
    RETRY = "retry"
    MAX_RETRIES_REACHED = "max_retries_reached"
    CANCELLED = "cancelled"
    REMOVED = "removed"
    CLEARED = "cleared"
    REMOVE_REFUSED = "remove_refused"
    CANCEL_REFUSED = "cancel_refused"
    RETRY_REFUSED = "retry_refused"
    CLEAR_REFUSED = "clear_refused"


class RefusalReason(str, Enum):
    """Why a queue mutation was turned down."""
    QUEUE_PROCESSING = "queue_processing"
    TRANSACTION_PROCESSING = "transaction_processing"
    NOT_FOUND = "not_found"
    NOT_PENDING = "not_pending"
    NOT_FAILED = "not_failed"
    MAX_RETRIES_REACHED = "max_retries_reached"


class QueueEvent(BaseModel):
    """Structured notification for the host UI (toast, log line, ...)."""
    kind: EventKind
    message: str
    transaction_id: Optional[str] = None
    reason: Optional[RefusalReason] = None
    timestamp: int = Field(default_factory=now_ms)

    @property
    def is_refusal(self) -> bool:
        return self.reason is not None

    def to_json(self) -> bytes:
        return orjson.dumps(self.model_dump(mode="json", exclude_none=True))
