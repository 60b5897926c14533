"""Ledger of created resources.

The ledger is the single source of truth for what must be torn down. A
record is appended as soon as the driver confirms creation and leaves the
ledger only when its teardown succeeds (or finds it already gone).
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Dict, Iterator, List, Mapping, Optional, Protocol

from stepwise.plans.models import TeardownSpec


@dataclass(frozen=True)
class ResourceRecord:
    """Immutable record of one created resource."""

    sequence: int
    kind: str
    id: str
    step: str
    driver: str
    teardown: TeardownSpec = field(default_factory=TeardownSpec)
    attributes: Dict[str, Any] = field(default_factory=dict)
    created_at: datetime = field(default_factory=lambda: datetime.now(timezone.utc))

    @property
    def label(self) -> str:
        return f"{self.kind}:{self.id}"

    def to_dict(self) -> Dict[str, Any]:
        return {
            "sequence": self.sequence,
            "kind": self.kind,
            "id": self.id,
            "step": self.step,
            "driver": self.driver,
            "teardown": self.teardown.to_dict(),
            "attributes": dict(self.attributes),
            "created_at": self.created_at.isoformat(),
        }

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> "ResourceRecord":
        return cls(
            sequence=int(data["sequence"]),
            kind=str(data["kind"]),
            id=str(data["id"]),
            step=str(data.get("step", "")),
            driver=str(data.get("driver", "")),
            teardown=TeardownSpec.from_dict(data.get("teardown")),
            attributes=dict(data.get("attributes") or {}),
            created_at=datetime.fromisoformat(data["created_at"])
            if data.get("created_at")
            else datetime.now(timezone.utc),
        )


class LedgerListener(Protocol):
    """Receives ledger changes, e.g. to persist them."""

    def record_created(self, record: ResourceRecord) -> None:
        ...

    def record_released(self, record: ResourceRecord) -> None:
        ...


class Ledger:
    """Ordered, append-only list of ResourceRecords for one run."""

    def __init__(
        self,
        records: Optional[List[ResourceRecord]] = None,
        *,
        listener: Optional[LedgerListener] = None,
        next_sequence: Optional[int] = None,
    ) -> None:
        self._records: List[ResourceRecord] = sorted(records or [], key=lambda r: r.sequence)
        self._listener = listener
        highest = self._records[-1].sequence if self._records else 0
        self._next_sequence = max(next_sequence or 1, highest + 1)

    def append(
        self,
        *,
        kind: str,
        resource_id: str,
        step: str,
        driver: str,
        teardown: Optional[TeardownSpec] = None,
        attributes: Optional[Mapping[str, Any]] = None,
    ) -> ResourceRecord:
        """Append a record; it is persisted before this returns."""
        record = ResourceRecord(
            sequence=self._next_sequence,
            kind=kind,
            id=resource_id,
            step=step,
            driver=driver,
            teardown=teardown or TeardownSpec(),
            attributes=dict(attributes or {}),
        )
        # Kept in memory even if persisting fails, so this run can still reverse it
        self._records.append(record)
        self._next_sequence += 1
        if self._listener is not None:
            self._listener.record_created(record)
        return record

    def release(self, record: ResourceRecord) -> None:
        """Remove a record after its teardown succeeded."""
        if record not in self._records:
            raise KeyError(f"Record {record.sequence} ({record.label}) is not in the ledger")
        if self._listener is not None:
            self._listener.record_released(record)
        self._records.remove(record)

    def in_teardown_order(self) -> List[ResourceRecord]:
        """Records by strictly descending sequence."""
        return list(reversed(self._records))

    @property
    def records(self) -> List[ResourceRecord]:
        return list(self._records)

    def get(self, sequence: int) -> Optional[ResourceRecord]:
        return next((r for r in self._records if r.sequence == sequence), None)

    def __iter__(self) -> Iterator[ResourceRecord]:
        return iter(list(self._records))

    def __len__(self) -> int:
        return len(self._records)

    def __bool__(self) -> bool:
        return bool(self._records)
