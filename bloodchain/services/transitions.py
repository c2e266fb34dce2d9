"""
Pure state transitions for donors, scheduled donations, inventory records and
blood requests.

Each function takes the current snapshot(s), validates the intent and returns
the new snapshot(s) together with the events the change produces. Nothing here
reads the clock or touches the ledger; callers pass ``now`` in and commit the
results themselves.
"""
from datetime import datetime, timedelta
from typing import List, Optional, Tuple
from uuid import UUID

from bloodchain.core.clock import EPOCH, to_epoch
from bloodchain.core.exceptions import (
    AlreadyCompleted,
    AlreadyRegistered,
    DuplicateSchedule,
    EligibilityWindowViolation,
    InsufficientInventory,
    InvalidField,
    InvalidQuantity,
    InvalidSchedule,
    InvalidTransition,
    MissingReason,
    NotRegistered,
    ScheduleNotFound,
)
from bloodchain.models.blood_request import RequestStatus, Urgency
from bloodchain.models.donor import BloodGroup
from bloodchain.schemas.blood_request import BloodRequest
from bloodchain.schemas.donation import ScheduledDonation
from bloodchain.schemas.donor import Donor
from bloodchain.schemas.inventory import InventoryRecord
from bloodchain.services import policy
from bloodchain.services.events import (
    DomainEvent,
    DonationRecorded,
    DonationScheduled,
    DonorRegistered,
    InventoryAdjusted,
    RequestStatusChanged,
    RewardPointsUpdated,
)

Events = List[DomainEvent]


def _is_quantity(value) -> bool:
    return isinstance(value, int) and not isinstance(value, bool)


def parse_enum(enum_cls, value, field: str):
    """Coerce a raw value (e.g. "O+") into ``enum_cls``, raising InvalidField otherwise."""
    try:
        return enum_cls(value)
    except ValueError:
        raise InvalidField(field, value) from None


# Donors

def register_donor(
    existing: Optional[Donor],
    identity: str,
    blood_group: BloodGroup,
    now: datetime,
) -> Tuple[Donor, Events]:
    if existing is not None and existing.is_registered:
        raise AlreadyRegistered(identity)
    donor = Donor(
        identity=identity,
        blood_group=blood_group,
        reward_points=0,
        last_donation_time=EPOCH,
        registered_at=now,
    )
    return donor, [DonorRegistered(entity_id=identity, occurred_at=now, blood_group=blood_group)]


def require_registered(donor: Optional[Donor], identity: str) -> Donor:
    if donor is None or not donor.is_registered:
        raise NotRegistered(identity)
    return donor


def award_points(donor: Donor, amount: int, now: datetime) -> Tuple[Donor, Events]:
    if not _is_quantity(amount) or amount <= 0:
        raise InvalidQuantity(
            f"Reward amount must be a positive integer, got {amount!r}",
            identity=donor.identity, amount=amount,
        )
    updated = donor.model_copy(update={"reward_points": donor.reward_points + amount})
    event = RewardPointsUpdated(
        entity_id=donor.identity,
        occurred_at=now,
        reward_points=updated.reward_points,
        awarded=amount,
    )
    return updated, [event]


# Scheduling

def check_eligibility(donor: Donor, at: datetime, interval: timedelta) -> None:
    if not policy.is_eligible(donor.last_donation_time, at, interval):
        earliest = policy.next_eligible_time(donor.last_donation_time, interval)
        raise EligibilityWindowViolation(
            f"Donor {donor.identity} must wait {interval.days} days between donations; "
            f"next eligible at {earliest.isoformat()}",
            identity=donor.identity,
            requested_time=at,
            last_donation_time=donor.last_donation_time,
            next_eligible_time=earliest,
        )


def schedule_donation(
    donor: Optional[Donor],
    identity: str,
    hospital: str,
    notes: str,
    requested_time: datetime,
    now: datetime,
    interval: timedelta,
    existing: Optional[ScheduledDonation],
    walk_in: bool = False,
) -> Tuple[ScheduledDonation, Events]:
    """
    Validate and build a new scheduled donation.

    Checks run in order: registration, future time (skipped for walk-ins, which
    are recorded at ``now``), eligibility window, duplicate key.
    """
    donor = require_registered(donor, identity)
    if not walk_in and requested_time <= now:
        raise InvalidSchedule(
            "Donation must be scheduled for a future date and time",
            identity=identity, requested_time=requested_time, now=now,
        )
    check_eligibility(donor, requested_time, interval)
    if existing is not None:
        raise DuplicateSchedule(
            f"Donor {identity} already has a donation scheduled at {requested_time.isoformat()}",
            identity=identity, requested_time=requested_time,
        )
    donation = ScheduledDonation(
        id=to_epoch(requested_time),
        donor=identity,
        hospital=hospital,
        scheduled_for=requested_time,
        notes=notes or "",
    )
    event = DonationScheduled(
        entity_id=donation.key,
        occurred_at=now,
        donor=identity,
        hospital=hospital,
        scheduled_for=requested_time,
    )
    return donation, [event]


def complete_donation(
    donation: Optional[ScheduledDonation],
    donor: Donor,
    scheduled_time: datetime,
    points: int,
    now: datetime,
) -> Tuple[ScheduledDonation, Donor, Events]:
    """
    Mark a donation completed and move the donor's last donation time.

    Reward points are not added here; the registry's ``award_points`` does that
    so the award follows one code path.
    """
    if donation is None:
        raise ScheduleNotFound(
            f"No scheduled donation for {donor.identity} at {scheduled_time.isoformat()}",
            identity=donor.identity, scheduled_time=scheduled_time,
        )
    if donation.completed:
        raise AlreadyCompleted(
            f"Donation {donation.key} is already completed",
            identity=donor.identity, donation_id=donation.id,
        )
    completed = donation.model_copy(update={
        "completed": True,
        "points_earned": points,
        "completed_at": now,
    })
    # last donation time follows the donation's own timestamp and never moves backwards
    last = max(donor.last_donation_time, donation.scheduled_for)
    updated_donor = donor.model_copy(update={"last_donation_time": last})
    event = DonationRecorded(
        entity_id=completed.key,
        occurred_at=now,
        donor=donor.identity,
        hospital=completed.hospital,
        blood_group=donor.blood_group,
        scheduled_for=completed.scheduled_for,
        points_earned=points,
    )
    return completed, updated_donor, [event]


# Inventory

def adjust_inventory(
    record: Optional[InventoryRecord],
    hospital: str,
    blood_group: BloodGroup,
    delta: int,
    now: datetime,
) -> Tuple[InventoryRecord, Events]:
    if not _is_quantity(delta):
        raise InvalidQuantity(
            f"Inventory delta must be an integer, got {delta!r}",
            hospital=hospital, blood_group=blood_group, delta=delta,
        )
    current = record.units if record is not None else 0
    if current + delta < 0:
        raise InsufficientInventory(
            f"Hospital {hospital} has {current} unit(s) of {blood_group.value}, "
            f"cannot remove {-delta}",
            hospital=hospital, blood_group=blood_group, available=current, requested=-delta,
        )
    updated = InventoryRecord(
        hospital=hospital,
        blood_group=blood_group,
        units=current + delta,
        last_updated=now,
    )
    return updated, [_inventory_event(updated, delta, now)]


def set_inventory(
    record: Optional[InventoryRecord],
    hospital: str,
    blood_group: BloodGroup,
    units: int,
    now: datetime,
) -> Tuple[InventoryRecord, Events]:
    if not _is_quantity(units) or units < 0:
        raise InvalidQuantity(
            f"Inventory units must be a non-negative integer, got {units!r}",
            hospital=hospital, blood_group=blood_group, units=units,
        )
    current = record.units if record is not None else 0
    updated = InventoryRecord(hospital=hospital, blood_group=blood_group, units=units, last_updated=now)
    return updated, [_inventory_event(updated, units - current, now)]


def _inventory_event(record: InventoryRecord, delta: int, now: datetime) -> InventoryAdjusted:
    return InventoryAdjusted(
        entity_id=record.key,
        occurred_at=now,
        hospital=record.hospital,
        blood_group=record.blood_group,
        units=record.units,
        delta=delta,
    )


# Blood requests

def create_request(
    request_id: UUID,
    recipient: str,
    hospital: str,
    blood_group: BloodGroup,
    units: int,
    urgency: Urgency,
    notes: str,
    now: datetime,
) -> Tuple[BloodRequest, Events]:
    if not _is_quantity(units) or units <= 0:
        raise InvalidQuantity(
            f"Requested units must be a positive integer, got {units!r}",
            recipient=recipient, hospital=hospital, units=units,
        )
    request = BloodRequest(
        id=request_id,
        recipient=recipient,
        hospital=hospital,
        blood_group=blood_group,
        units=units,
        urgency=urgency,
        status=RequestStatus.PENDING,
        notes=notes or "",
        created_at=now,
    )
    event = RequestStatusChanged(
        entity_id=str(request_id),
        occurred_at=now,
        request_id=request_id,
        status=RequestStatus.PENDING,
    )
    return request, [event]


def transition_request(
    request: BloodRequest,
    target: RequestStatus,
    now: datetime,
    allow_direct_fulfillment: bool = False,
    reason: Optional[str] = None,
) -> Tuple[BloodRequest, Events]:
    if not policy.can_transition(request.status, target, allow_direct_fulfillment):
        raise InvalidTransition(
            f"Blood request {request.id} cannot move from {request.status.value} to {target.value}",
            request_id=request.id, current_status=request.status, target_status=target,
        )
    update = {"status": target, "updated_at": now}
    if target == RequestStatus.REJECTED:
        reason = (reason or "").strip()
        if not reason:
            raise MissingReason(
                f"A reason is required to reject blood request {request.id}",
                request_id=request.id,
            )
        update["rejection_reason"] = reason
    updated = request.model_copy(update=update)
    event = RequestStatusChanged(
        entity_id=str(request.id),
        occurred_at=now,
        request_id=request.id,
        status=target,
        previous_status=request.status,
    )
    return updated, [event]
