"""
Ledger collaborator: the system of record the core commits state changes to.

``Ledger`` is the narrow interface the services depend on. Each ``commit_*``
call is atomic on its own; ``transaction()`` groups several commits into one
boundary so that a multi-step operation either lands completely or not at all.

Writes are guarded: every commit names the state it was computed from
(``previous``), and the ledger refuses it with ``ConcurrentUpdate`` when the
stored record no longer matches, or when an insert finds the key taken.

``InMemoryLedger`` keeps entities in dictionaries. Inside a transaction each
thread writes to its own buffer, reads its own buffer first, and the buffer is
applied to the shared tables only when the transaction commits.
"""
import itertools
import logging
import threading
from abc import ABC, abstractmethod
from contextlib import contextmanager
from datetime import datetime
from typing import Any, Dict, Iterator, List, Optional, Tuple
from uuid import UUID

from pydantic import BaseModel, ConfigDict

from bloodchain.core.clock import utcnow
from bloodchain.core.exceptions import ConcurrentUpdate
from bloodchain.models.blood_request import RequestStatus
from bloodchain.models.donor import BloodGroup
from bloodchain.schemas.blood_request import BloodRequest
from bloodchain.schemas.donation import ScheduledDonation
from bloodchain.schemas.donor import Donor
from bloodchain.schemas.inventory import InventoryRecord

logger = logging.getLogger(__name__)

# Expected column values of the stored record; None means the key must be free.
Expected = Optional[Dict[str, Any]]


class Receipt(BaseModel):
    model_config = ConfigDict(frozen=True)

    operation: str
    entity_id: str
    sequence: int
    committed_at: datetime


def donor_guard(previous: Donor) -> Dict[str, Any]:
    return {
        "reward_points": previous.reward_points,
        "last_donation_time": previous.last_donation_time,
    }


class Ledger(ABC):

    @abstractmethod
    def transaction(self):
        """Context manager for one atomic boundary. Nested calls join the outer one."""

    # Commits

    @abstractmethod
    def commit_donor_registration(self, donor: Donor) -> Receipt:
        """Insert a new donor; ConcurrentUpdate if the identity is taken."""

    @abstractmethod
    def commit_donor_update(self, donor: Donor, previous: Donor) -> Receipt:
        """Replace ``previous`` with ``donor``; ConcurrentUpdate if the stored donor moved on."""

    @abstractmethod
    def commit_scheduled_donation(self, donation: ScheduledDonation) -> Receipt:
        """Insert a new scheduled donation; ConcurrentUpdate if the slot is taken."""

    @abstractmethod
    def commit_completion(self, donation: ScheduledDonation, donor: Donor, previous: Donor) -> Receipt:
        """Mark a pending donation completed and update its donor in one step."""

    @abstractmethod
    def commit_inventory_adjustment(self, record: InventoryRecord, previous_units: Optional[int]) -> Receipt:
        """Store a new unit count; ``previous_units`` is None when the record is new."""

    @abstractmethod
    def commit_request_transition(
        self, request: BloodRequest, previous_status: Optional[RequestStatus]
    ) -> Receipt:
        """Persist a request in its new state; ``previous_status`` is None on creation."""

    # Queries

    @abstractmethod
    def query_donor(self, identity: str) -> Optional[Donor]: ...

    @abstractmethod
    def query_scheduled_donation(self, donor: str, donation_id: int) -> Optional[ScheduledDonation]: ...

    @abstractmethod
    def query_scheduled_donations(self, donor: str) -> List[ScheduledDonation]: ...

    @abstractmethod
    def query_inventory(self, hospital: str, blood_group: BloodGroup) -> Optional[InventoryRecord]: ...

    @abstractmethod
    def query_hospital_inventory(self, hospital: str) -> List[InventoryRecord]: ...

    @abstractmethod
    def query_request(self, request_id: UUID) -> Optional[BloodRequest]: ...

    @abstractmethod
    def query_requests(
        self,
        recipient: Optional[str] = None,
        hospital: Optional[str] = None,
        status: Optional[RequestStatus] = None,
    ) -> List[BloodRequest]: ...


_ENTITIES = {
    "donors": "donor",
    "donations": "scheduled_donation",
    "inventory": "inventory",
    "requests": "request",
}


def _matches(current, expected: Expected) -> bool:
    if expected is None:
        return current is None
    return current is not None and all(getattr(current, k) == v for k, v in expected.items())


class _PendingWrites:
    """One thread's uncommitted writes plus the guards to re-check against committed data."""

    def __init__(self):
        self.writes: Dict[Tuple[str, Any], Any] = {}
        self.checks: List[Tuple[str, Any, Expected]] = []


class InMemoryLedger(Ledger):
    """Dictionary-backed ledger for tests, demos and single-process deployments."""

    def __init__(self):
        self._tables: Dict[str, dict] = {table: {} for table in _ENTITIES}
        self._guard = threading.RLock()
        self._local = threading.local()
        self._sequence = itertools.count(1)

    # Transactions

    def _pending(self) -> Optional[_PendingWrites]:
        return getattr(self._local, "pending", None)

    @contextmanager
    def transaction(self) -> Iterator[None]:
        if self._pending() is not None:
            yield
            return
        pending = _PendingWrites()
        self._local.pending = pending
        try:
            yield
        except BaseException:
            if pending.writes:
                logger.info(f"Discarded {len(pending.writes)} uncommitted ledger write(s)")
            raise
        finally:
            self._local.pending = None
        self._apply(pending)

    def _apply(self, pending: _PendingWrites) -> None:
        with self._guard:
            for table, key, expected in pending.checks:
                if not _matches(self._tables[table].get(key), expected):
                    logger.warning(f"Ledger commit refused: {_ENTITIES[table]} {key} changed")
                    raise ConcurrentUpdate(_ENTITIES[table], key)
            for (table, key), value in pending.writes.items():
                self._tables[table][key] = value

    def _read(self, table: str, key):
        pending = self._pending()
        if pending is not None and (table, key) in pending.writes:
            return pending.writes[(table, key)]
        with self._guard:
            return self._tables[table].get(key)

    def _rows(self, table: str) -> list:
        with self._guard:
            rows = dict(self._tables[table])
        pending = self._pending()
        if pending is not None:
            rows.update({key: value for (t, key), value in pending.writes.items() if t == table})
        return list(rows.items())

    def _write(self, operation: str, table: str, key, value, expected: Expected, entity_id: str) -> Receipt:
        pending = self._pending()
        if pending is None:
            with self._guard:
                if not _matches(self._tables[table].get(key), expected):
                    raise ConcurrentUpdate(_ENTITIES[table], key)
                self._tables[table][key] = value
        else:
            if not _matches(self._read(table, key), expected):
                raise ConcurrentUpdate(_ENTITIES[table], key)
            if (table, key) not in pending.writes:
                pending.checks.append((table, key, expected))
            pending.writes[(table, key)] = value
        return Receipt(
            operation=operation, entity_id=entity_id, sequence=next(self._sequence), committed_at=utcnow()
        )

    # Commits

    def commit_donor_registration(self, donor: Donor) -> Receipt:
        return self._write("donor_registration", "donors", donor.identity, donor, None, donor.identity)

    def commit_donor_update(self, donor: Donor, previous: Donor) -> Receipt:
        return self._write(
            "donor_update", "donors", donor.identity, donor, donor_guard(previous), donor.identity
        )

    def commit_scheduled_donation(self, donation: ScheduledDonation) -> Receipt:
        return self._write(
            "scheduled_donation", "donations", (donation.donor, donation.id), donation, None, donation.key
        )

    def commit_completion(self, donation: ScheduledDonation, donor: Donor, previous: Donor) -> Receipt:
        with self.transaction():
            self._write(
                "completion", "donations", (donation.donor, donation.id), donation,
                {"completed": False}, donation.key,
            )
            self._write("donor_update", "donors", donor.identity, donor, donor_guard(previous), donor.identity)
        return Receipt(
            operation="completion", entity_id=donation.key, sequence=next(self._sequence), committed_at=utcnow()
        )

    def commit_inventory_adjustment(self, record: InventoryRecord, previous_units: Optional[int]) -> Receipt:
        expected = None if previous_units is None else {"units": previous_units}
        return self._write(
            "inventory_adjustment", "inventory", (record.hospital, record.blood_group), record,
            expected, record.key,
        )

    def commit_request_transition(
        self, request: BloodRequest, previous_status: Optional[RequestStatus]
    ) -> Receipt:
        expected = None if previous_status is None else {"status": previous_status}
        return self._write("request_transition", "requests", request.id, request, expected, str(request.id))

    # Queries

    def query_donor(self, identity: str) -> Optional[Donor]:
        return self._read("donors", identity)

    def query_scheduled_donation(self, donor: str, donation_id: int) -> Optional[ScheduledDonation]:
        return self._read("donations", (donor, donation_id))

    def query_scheduled_donations(self, donor: str) -> List[ScheduledDonation]:
        donations = [d for (owner, _), d in self._rows("donations") if owner == donor]
        return sorted(donations, key=lambda d: d.id)

    def query_inventory(self, hospital: str, blood_group: BloodGroup) -> Optional[InventoryRecord]:
        return self._read("inventory", (hospital, blood_group))

    def query_hospital_inventory(self, hospital: str) -> List[InventoryRecord]:
        return [r for (owner, _), r in self._rows("inventory") if owner == hospital]

    def query_request(self, request_id: UUID) -> Optional[BloodRequest]:
        return self._read("requests", request_id)

    def query_requests(
        self,
        recipient: Optional[str] = None,
        hospital: Optional[str] = None,
        status: Optional[RequestStatus] = None,
    ) -> List[BloodRequest]:
        requests = [
            r for _, r in self._rows("requests")
            if (recipient is None or r.recipient == recipient)
            and (hospital is None or r.hospital == hospital)
            and (status is None or r.status == status)
        ]
        return sorted(requests, key=lambda r: r.created_at, reverse=True)
