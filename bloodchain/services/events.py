"""
Domain events and the synchronous observer bus.

Services publish events only after the ledger transaction that produced them
has committed, so every event corresponds to exactly one durable change.
"""
import logging
import threading
from collections import defaultdict
from datetime import datetime
from typing import Callable, Dict, Iterable, List, Optional, Type
from uuid import UUID

from pydantic import BaseModel, ConfigDict

from bloodchain.models.blood_request import RequestStatus
from bloodchain.models.donor import BloodGroup

logger = logging.getLogger(__name__)


class DomainEvent(BaseModel):
    model_config = ConfigDict(frozen=True)

    entity_id: str
    occurred_at: datetime

    @property
    def name(self) -> str:
        return type(self).__name__


class DonorRegistered(DomainEvent):
    blood_group: BloodGroup


class DonationScheduled(DomainEvent):
    donor: str
    hospital: str
    scheduled_for: datetime


class DonationRecorded(DomainEvent):
    donor: str
    hospital: str
    blood_group: BloodGroup
    scheduled_for: datetime
    points_earned: int


class RewardPointsUpdated(DomainEvent):
    reward_points: int
    awarded: int


class InventoryAdjusted(DomainEvent):
    hospital: str
    blood_group: BloodGroup
    units: int
    delta: int


class RequestStatusChanged(DomainEvent):
    request_id: UUID
    status: RequestStatus
    previous_status: Optional[RequestStatus] = None


Handler = Callable[[DomainEvent], None]


class EventBus:
    """Fan-out of domain events to subscribed observers."""

    def __init__(self):
        self._handlers: Dict[Type[DomainEvent], List[Handler]] = defaultdict(list)
        self._lock = threading.Lock()

    def subscribe(self, handler: Handler, event_type: Type[DomainEvent] = DomainEvent) -> Callable[[], None]:
        """Register ``handler`` for ``event_type`` and its subclasses. Returns an unsubscribe callable."""
        with self._lock:
            self._handlers[event_type].append(handler)

        def unsubscribe():
            with self._lock:
                if handler in self._handlers[event_type]:
                    self._handlers[event_type].remove(handler)

        return unsubscribe

    def _handlers_for(self, event: DomainEvent) -> List[Handler]:
        with self._lock:
            return [
                handler
                for event_type, handlers in self._handlers.items()
                if isinstance(event, event_type)
                for handler in handlers
            ]

    def publish(self, events: Iterable[DomainEvent]) -> None:
        for event in events:
            logger.debug(f"Publishing {event.name} for {event.entity_id}")
            for handler in self._handlers_for(event):
                try:
                    handler(event)
                except Exception as e:
                    # The change is already committed; a broken observer must not undo it
                    logger.warning(f"Observer failed on {event.name} for {event.entity_id}: {e}", exc_info=True)


event_logger = logging.getLogger("bloodchain.events")


def log_domain_event(event: DomainEvent) -> None:
    """Observer writing one line per event, e.g. ``InventoryAdjusted General:O+: hospital=General blood_group=O+ units=3 delta=-2``."""
    fields = event.model_dump(mode="json", exclude={"entity_id", "occurred_at"})
    detail = " ".join(f"{k}={v}" for k, v in fields.items() if v is not None)
    event_logger.info(f"{event.name} {event.entity_id}: {detail}")
