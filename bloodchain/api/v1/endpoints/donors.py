from fastapi import APIRouter, Depends, status
from typing import List
import logging
from bloodchain.api.deps import get_coordinator
from bloodchain.schemas.donation import (
    DonationHistoryEntry,
    DonationScheduleCreate,
    ScheduledDonation,
    WalkInDonationCreate,
)
from bloodchain.schemas.donor import Donor, DonorRegister, DonorResponse, PointsAward, RewardSummary
from bloodchain.services import policy
from bloodchain.services.coordinator import BloodBankCoordinator

logger = logging.getLogger(__name__)
router = APIRouter()

def _donor_response(donor: Donor) -> DonorResponse:
    return DonorResponse(
        identity=donor.identity,
        is_registered=donor.is_registered,
        blood_group=donor.blood_group,
        reward_points=donor.reward_points,
        last_donation_time=donor.last_donation_time if policy.has_donated(donor.last_donation_time) else None,
        registered_at=donor.registered_at,
    )

@router.post("/", response_model=DonorResponse, status_code=status.HTTP_201_CREATED)
def register_donor(
    payload: DonorRegister,
    coordinator: BloodBankCoordinator = Depends(get_coordinator),
):
    """Register a donor. 409 if the identity is already registered."""
    logger.info(f"Donor registration requested: {payload.identity} ({payload.blood_group.value})")
    donor = coordinator.donors.register_donor(payload.identity, payload.blood_group)
    return _donor_response(donor)

@router.get("/{identity}", response_model=DonorResponse)
def get_donor(identity: str, coordinator: BloodBankCoordinator = Depends(get_coordinator)):
    return _donor_response(coordinator.donors.get_donor(identity))

@router.get("/{identity}/rewards", response_model=RewardSummary)
def get_rewards(identity: str, coordinator: BloodBankCoordinator = Depends(get_coordinator)):
    """Reward points, tier and next eligibility for the donor dashboard."""
    return coordinator.donors.get_reward_summary(identity)

@router.get("/{identity}/donations", response_model=List[DonationHistoryEntry])
def get_donation_history(identity: str, coordinator: BloodBankCoordinator = Depends(get_coordinator)):
    """Scheduled and completed donations, most recent first."""
    return coordinator.scheduling.donation_history(identity)

@router.post("/{identity}/donations", response_model=ScheduledDonation, status_code=status.HTTP_201_CREATED)
def schedule_donation(
    identity: str,
    payload: DonationScheduleCreate,
    coordinator: BloodBankCoordinator = Depends(get_coordinator),
):
    logger.info(f"Donation booking requested: {identity} at {payload.hospital} for {payload.scheduled_for}")
    return coordinator.scheduling.schedule_donation(
        identity, payload.hospital, payload.notes, payload.scheduled_for
    )

@router.post("/{identity}/donations/{donation_id}/complete", response_model=ScheduledDonation)
def complete_donation(
    identity: str,
    donation_id: int,
    coordinator: BloodBankCoordinator = Depends(get_coordinator),
):
    """Complete the donation scheduled at ``donation_id`` (epoch seconds)."""
    logger.info(f"Donation completion requested: {identity} / {donation_id}")
    return coordinator.scheduling.complete_scheduled_donation(identity, donation_id)

@router.post("/{identity}/donations/walk-in", response_model=ScheduledDonation, status_code=status.HTTP_201_CREATED)
def record_walk_in_donation(
    identity: str,
    payload: WalkInDonationCreate,
    coordinator: BloodBankCoordinator = Depends(get_coordinator),
):
    """Record a donation made now at a hospital, without a prior appointment."""
    logger.info(f"Walk-in donation requested: {identity} at {payload.hospital}")
    return coordinator.scheduling.record_donation(identity, payload.hospital, payload.notes)

@router.post("/{identity}/rewards", response_model=DonorResponse)
def award_points(
    identity: str,
    payload: PointsAward,
    coordinator: BloodBankCoordinator = Depends(get_coordinator),
):
    """Administrative reward grant outside the donation flow."""
    logger.info(f"Reward grant requested: {payload.amount} point(s) to {identity}")
    return _donor_response(coordinator.donors.award_points(identity, payload.amount))
