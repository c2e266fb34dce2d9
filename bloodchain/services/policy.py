"""
Donation and request policy: eligibility windows, reward tiers and the
blood-request transition table. Everything here is a pure function.
"""
from datetime import datetime, timedelta
from typing import Dict, FrozenSet, Optional
import enum

from bloodchain.core.clock import EPOCH, ensure_utc
from bloodchain.models.blood_request import RequestStatus

MINIMUM_DONATION_INTERVAL = timedelta(days=90)
REWARD_POINTS_PER_DONATION = 10
REWARD_STEP = 10


class RewardTier(str, enum.Enum):
    BRONZE = "Bronze"
    SILVER = "Silver"
    GOLD = "Gold"
    PLATINUM = "Platinum"


# Highest threshold first
REWARD_TIER_THRESHOLDS = (
    (100, RewardTier.PLATINUM),
    (50, RewardTier.GOLD),
    (20, RewardTier.SILVER),
    (0, RewardTier.BRONZE),
)

REQUEST_TRANSITIONS: Dict[RequestStatus, FrozenSet[RequestStatus]] = {
    RequestStatus.PENDING: frozenset({RequestStatus.APPROVED, RequestStatus.REJECTED}),
    RequestStatus.APPROVED: frozenset({RequestStatus.FULFILLED}),
    RequestStatus.FULFILLED: frozenset(),
    RequestStatus.REJECTED: frozenset(),
}

TERMINAL_STATUSES = frozenset({RequestStatus.FULFILLED, RequestStatus.REJECTED})


def has_donated(last_donation_time: datetime) -> bool:
    """Epoch is the registry's "never donated" sentinel."""
    return ensure_utc(last_donation_time) > EPOCH


def next_eligible_time(
    last_donation_time: datetime,
    interval: timedelta = MINIMUM_DONATION_INTERVAL,
) -> Optional[datetime]:
    """Earliest time a new donation may be scheduled, or None if there is no restriction."""
    if not has_donated(last_donation_time):
        return None
    return ensure_utc(last_donation_time) + interval


def is_eligible(
    last_donation_time: datetime,
    at: datetime,
    interval: timedelta = MINIMUM_DONATION_INTERVAL,
) -> bool:
    earliest = next_eligible_time(last_donation_time, interval)
    return earliest is None or ensure_utc(at) >= earliest


def reward_tier(points: int) -> RewardTier:
    for threshold, tier in REWARD_TIER_THRESHOLDS:
        if points >= threshold:
            return tier
    return RewardTier.BRONZE


def next_reward_at(points: int, step: int = REWARD_STEP) -> int:
    """Point total at which the next reward is reached."""
    return points + (step - points % step)


def allowed_transitions(
    status: RequestStatus,
    allow_direct_fulfillment: bool = False,
) -> FrozenSet[RequestStatus]:
    allowed = REQUEST_TRANSITIONS[status]
    if allow_direct_fulfillment and status == RequestStatus.PENDING:
        allowed = allowed | {RequestStatus.FULFILLED}
    return allowed


def can_transition(
    current: RequestStatus,
    target: RequestStatus,
    allow_direct_fulfillment: bool = False,
) -> bool:
    return target in allowed_transitions(current, allow_direct_fulfillment)
