from __future__ import annotations

import enum
import logging
from collections.abc import Iterable
from dataclasses import dataclass
from typing import Protocol

from normalize.models import NormalizedAlert


logger = logging.getLogger(__name__)


class SyncAction(str, enum.Enum):
    INSERTED = "inserted"
    UPDATED = "updated"
    ERROR = "error"


@dataclass(frozen=True)
class SyncOutcome:
    event_id: str
    action: SyncAction
    error: str | None = None

    def to_dict(self) -> dict:
        return {"eventId": self.event_id, "action": self.action.value, "error": self.error}


class AlertStore(Protocol):
    def find_by_event_id(self, event_id: str) -> dict | None: ...

    def insert(self, alert: NormalizedAlert) -> dict: ...

    def update(self, event_id: str, alert: NormalizedAlert) -> dict: ...


def reconcile_one(alert: NormalizedAlert, store: AlertStore) -> SyncOutcome:
    try:
        existing = store.find_by_event_id(alert.event_id)
        if existing is None:
            store.insert(alert)
            return SyncOutcome(event_id=alert.event_id, action=SyncAction.INSERTED)
        store.update(alert.event_id, alert)
        return SyncOutcome(event_id=alert.event_id, action=SyncAction.UPDATED)
    except Exception as e:  # any store failure stays local to this record
        logger.warning(
            "failed to persist event %s: %s: %s",
            alert.event_id,
            e.__class__.__name__,
            e,
        )
        return SyncOutcome(
            event_id=alert.event_id,
            action=SyncAction.ERROR,
            error=str(e) or e.__class__.__name__,
        )


def reconcile(
    batch: Iterable[NormalizedAlert], store: AlertStore
) -> list[SyncOutcome]:
    return [reconcile_one(alert, store) for alert in batch]
