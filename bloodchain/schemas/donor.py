from pydantic import BaseModel, ConfigDict, Field, field_validator
from typing import Optional
from datetime import datetime
from bloodchain.core.clock import EPOCH, ensure_utc
from bloodchain.models.donor import BloodGroup
from bloodchain.services.policy import RewardTier

class Donor(BaseModel):
    """Immutable donor snapshot as stored in the ledger."""
    model_config = ConfigDict(frozen=True, from_attributes=True)

    identity: str
    is_registered: bool = True
    blood_group: BloodGroup
    reward_points: int = 0
    last_donation_time: datetime = EPOCH
    registered_at: Optional[datetime] = None

    @field_validator('last_donation_time', 'registered_at')
    @classmethod
    def utc(cls, v):
        return ensure_utc(v) if v is not None else v

class DonorRegister(BaseModel):
    identity: str = Field(..., min_length=1)
    blood_group: BloodGroup

class DonorResponse(BaseModel):
    identity: str
    is_registered: bool
    blood_group: BloodGroup
    reward_points: int
    last_donation_time: Optional[datetime] = None  # None when the donor never donated
    registered_at: Optional[datetime] = None

class PointsAward(BaseModel):
    amount: int = Field(..., gt=0)

class RewardSummary(BaseModel):
    identity: str
    reward_points: int
    tier: RewardTier
    next_reward_at: int
    completed_donations: int
    next_eligible_time: Optional[datetime] = None
