"""
Donor registry: registration, lookup and reward points.
"""
import logging
from datetime import timedelta
from typing import List, Tuple, Union

from bloodchain.core.exceptions import AlreadyRegistered
from bloodchain.models.donor import BloodGroup
from bloodchain.schemas.donor import Donor, RewardSummary
from bloodchain.services import policy, transitions
from bloodchain.services.base import LedgerBackedService
from bloodchain.services.events import DomainEvent

logger = logging.getLogger(__name__)


class DonorRegistry(LedgerBackedService):

    def __init__(self, *args, interval: timedelta = policy.MINIMUM_DONATION_INTERVAL, **kwargs):
        super().__init__(*args, **kwargs)
        self.interval = interval

    def register_donor(self, identity: str, blood_group: Union[BloodGroup, str]) -> Donor:
        """
        Register a donor with zero reward points and no donation history.

        Raises:
            AlreadyRegistered: the identity already has a donor record
        """
        blood_group = transitions.parse_enum(BloodGroup, blood_group, "blood_group")
        with self.locks.donors.hold(identity):
            existing = self._ledger("query_donor", identity)
            donor, events = transitions.register_donor(existing, identity, blood_group, self.now())
            self._commit(
                "commit_donor_registration", donor, entity="donor", conflict=AlreadyRegistered(identity)
            )
        logger.info(f"Registered donor {identity} ({blood_group.value})")
        self._publish(events)
        return donor

    def get_donor(self, identity: str) -> Donor:
        return transitions.require_registered(self._ledger("query_donor", identity), identity)

    def is_registered(self, identity: str) -> bool:
        donor = self._ledger("query_donor", identity)
        return donor is not None and donor.is_registered

    def award_points(self, identity: str, amount: int) -> Donor:
        with self.locks.donors.hold(identity):
            with self._atomic("award_points"):
                donor, events = self.apply_award(identity, amount)
        self._publish(events)
        return donor

    def apply_award(self, identity: str, amount: int) -> Tuple[Donor, List[DomainEvent]]:
        """
        Add reward points and commit, without locking or publishing.

        The caller must hold the donor lock and publish the returned events
        once its own transaction has committed.
        """
        donor = self.get_donor(identity)
        updated, events = transitions.award_points(donor, amount, self.now())
        self._ledger("commit_donor_update", updated, donor)
        logger.info(f"Awarded {amount} point(s) to donor {identity}; total {updated.reward_points}")
        return updated, events

    def get_reward_summary(self, identity: str) -> RewardSummary:
        donor = self.get_donor(identity)
        completed = sum(
            1 for d in self._ledger("query_scheduled_donations", identity) if d.completed
        )
        return RewardSummary(
            identity=identity,
            reward_points=donor.reward_points,
            tier=policy.reward_tier(donor.reward_points),
            next_reward_at=policy.next_reward_at(donor.reward_points),
            completed_donations=completed,
            next_eligible_time=policy.next_eligible_time(donor.last_donation_time, self.interval),
        )
