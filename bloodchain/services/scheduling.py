"""
Scheduling engine: donation appointments, completion and donation history.

A scheduled donation is keyed by (donor, scheduled time in epoch seconds) and
moves Scheduled -> Completed exactly once. Completion stamps the donor's last
donation time, awards reward points through the donor registry and credits the
hospital's inventory for the donor's blood group, all in one ledger
transaction.
"""
import logging
from contextlib import nullcontext
from datetime import datetime, timedelta
from typing import List, Optional, Union

from bloodchain.core.clock import normalize_timestamp, to_epoch
from bloodchain.core.exceptions import AlreadyCompleted, BloodChainError, DuplicateSchedule
from bloodchain.models.donor import BloodGroup
from bloodchain.schemas.donation import DonationHistoryEntry, ScheduledDonation
from bloodchain.services import policy, transitions
from bloodchain.services.base import LedgerBackedService
from bloodchain.services.donor_registry import DonorRegistry
from bloodchain.services.inventory import InventoryService

logger = logging.getLogger(__name__)

Timestamp = Union[datetime, int]


class SchedulingEngine(LedgerBackedService):

    def __init__(
        self,
        *args,
        donors: DonorRegistry,
        inventory: InventoryService,
        interval: timedelta = policy.MINIMUM_DONATION_INTERVAL,
        points_per_donation: int = policy.REWARD_POINTS_PER_DONATION,
        units_per_donation: int = 1,
        **kwargs,
    ):
        super().__init__(*args, **kwargs)
        self.donors = donors
        self.inventory = inventory
        self.interval = interval
        self.points_per_donation = points_per_donation
        self.units_per_donation = units_per_donation

    def schedule_donation(
        self,
        donor: str,
        hospital: str,
        notes: str,
        requested_time: Timestamp,
    ) -> ScheduledDonation:
        """
        Book a donation for ``requested_time`` at ``hospital``.

        Raises:
            NotRegistered: unknown donor
            InvalidSchedule: requested_time is not in the future
            EligibilityWindowViolation: less than the minimum interval since the last donation
            DuplicateSchedule: the donor already has a donation at that time
        """
        requested_time = normalize_timestamp(requested_time)
        with self.locks.donors.hold(donor):
            current = self._ledger("query_donor", donor)
            existing = self._ledger("query_scheduled_donation", donor, to_epoch(requested_time))
            try:
                donation, events = transitions.schedule_donation(
                    current, donor, hospital, notes, requested_time,
                    now=self.now(), interval=self.interval, existing=existing,
                )
            except BloodChainError as e:
                logger.warning(f"Scheduling rejected for donor {donor}: {e}")
                raise
            self._commit(
                "commit_scheduled_donation", donation,
                entity="scheduled_donation", conflict=_duplicate(donor, requested_time),
            )
        logger.info(f"Donor {donor} scheduled donation {donation.id} at {hospital}")
        self._publish(events)
        return donation

    def complete_scheduled_donation(self, donor: str, scheduled_time: Timestamp) -> ScheduledDonation:
        """
        Complete a pending donation.

        Raises:
            NotRegistered: unknown donor
            ScheduleNotFound: no donation for that donor at that time
            AlreadyCompleted: the donation was completed before (no second reward)
        """
        scheduled_time = normalize_timestamp(scheduled_time)
        with self.locks.donors.hold(donor):
            current = self.donors.get_donor(donor)
            donation = self._ledger("query_scheduled_donation", donor, to_epoch(scheduled_time))
            hospital = donation.hospital if donation is not None else None
            with self._holding_inventory(hospital, current.blood_group):
                with self._atomic("complete_scheduled_donation"):
                    completed, events = self._complete(donor, scheduled_time)
        self._publish(events)
        return completed

    def record_donation(self, donor: str, hospital: str, notes: str = "") -> ScheduledDonation:
        """
        Record a walk-in donation made now, as a scheduled entry that is completed immediately.

        Raises:
            NotRegistered: unknown donor
            EligibilityWindowViolation: less than the minimum interval since the last donation
            DuplicateSchedule: the donor already has an entry at this exact second
        """
        with self.locks.donors.hold(donor):
            blood_group = self.donors.get_donor(donor).blood_group
            with self._holding_inventory(hospital, blood_group), self._atomic("record_donation"):
                now = self.now()
                current = self._ledger("query_donor", donor)
                existing = self._ledger("query_scheduled_donation", donor, to_epoch(now))
                donation, events = transitions.schedule_donation(
                    current, donor, hospital, notes, now,
                    now=now, interval=self.interval, existing=existing, walk_in=True,
                )
                self._commit(
                    "commit_scheduled_donation", donation,
                    entity="scheduled_donation", conflict=_duplicate(donor, now),
                )
                completed, completion_events = self._complete(donor, now)
        logger.info(f"Recorded walk-in donation for donor {donor} at {hospital}")
        self._publish(events + completion_events)
        return completed

    def _holding_inventory(self, hospital: Optional[str], blood_group: BloodGroup):
        # held until the transaction ends: a rollback restores the units read under this lock
        if not self.units_per_donation or hospital is None:
            return nullcontext()
        return self.locks.inventory.hold((hospital, blood_group))

    def _complete(self, donor: str, scheduled_time: datetime):
        # caller holds the donor and inventory locks and an open ledger transaction
        current = self.donors.get_donor(donor)
        donation = self._ledger("query_scheduled_donation", donor, to_epoch(scheduled_time))
        try:
            completed, updated_donor, events = transitions.complete_donation(
                donation, current, scheduled_time, self.points_per_donation, self.now()
            )
        except BloodChainError as e:
            logger.warning(f"Completion rejected for donor {donor}: {e}")
            raise
        self._commit(
            "commit_completion", completed, updated_donor, current,
            entity="scheduled_donation",
            conflict=AlreadyCompleted(
                f"Donation {completed.key} is already completed",
                identity=donor, donation_id=completed.id,
            ),
        )
        _, reward_events = self.donors.apply_award(donor, self.points_per_donation)
        events = events + reward_events
        if self.units_per_donation:
            _, inventory_events = self.inventory.apply_adjustment(
                completed.hospital, updated_donor.blood_group, self.units_per_donation
            )
            events = events + inventory_events
        logger.info(f"Donor {donor} completed donation {completed.id} at {completed.hospital}")
        return completed, events

    def list_scheduled_donations(self, donor: str, pending_only: bool = False) -> List[ScheduledDonation]:
        self.donors.get_donor(donor)
        donations = self._ledger("query_scheduled_donations", donor)
        if pending_only:
            donations = [d for d in donations if not d.completed]
        return sorted(donations, key=lambda d: d.scheduled_for)

    def donation_history(self, donor: str) -> List[DonationHistoryEntry]:
        """Every scheduled and completed donation of ``donor``, most recent first, each listed once."""
        return [
            DonationHistoryEntry(
                id=d.id,
                hospital=d.hospital,
                scheduled_for=d.scheduled_for,
                status=d.status,
                points_earned=d.points_earned,
                notes=d.notes,
                completed_at=d.completed_at,
            )
            for d in sorted(
                self.list_scheduled_donations(donor), key=lambda d: d.scheduled_for, reverse=True
            )
        ]


def _duplicate(donor: str, requested_time: datetime) -> DuplicateSchedule:
    return DuplicateSchedule(
        f"Donor {donor} already has a donation scheduled at {requested_time.isoformat()}",
        identity=donor, requested_time=requested_time,
    )
