"""
Transaction history store interface.

History persistence belongs to the host application. The engine only needs
save and update-by-hash; InMemoryHistoryStore serves tests and the CLI.
"""

from typing import Optional, Protocol

from pydantic import BaseModel, Field, field_serializer

from .models import now_ms


class HistoryEntry(BaseModel):
    hash: str
    to: str
    value: int
    description: str
    status: str = "pending"
    chain_id: Optional[int] = None
    timestamp: int = Field(default_factory=now_ms)

    @field_serializer("value", when_used="json")
    def _value_as_string(self, value: int) -> str:
        return str(value)


class TransactionHistoryStore(Protocol):
    def get(self) -> list[HistoryEntry]: ...

    def save(self, entry: HistoryEntry) -> None: ...

    def update_by_hash(self, tx_hash: str, **changes) -> bool: ...


class InMemoryHistoryStore:
    """Newest first, capped at max_entries."""

    def __init__(self, max_entries: int = 100):
        self.max_entries = max_entries
        self._entries: list[HistoryEntry] = []

    def get(self) -> list[HistoryEntry]:
        return list(self._entries)

    def save(self, entry: HistoryEntry) -> None:
        self._entries.insert(0, entry)
        del self._entries[self.max_entries:]

    def update_by_hash(self, tx_hash: str, **changes) -> bool:
        for i, entry in enumerate(self._entries):
            if entry.hash == tx_hash:
                self._entries[i] = entry.model_copy(update=changes)
                return True
        return False
