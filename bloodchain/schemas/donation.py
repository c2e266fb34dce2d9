from pydantic import BaseModel, ConfigDict, Field, field_validator
from typing import Optional
from datetime import datetime
from bloodchain.core.clock import ensure_utc
import enum

class DonationStatus(str, enum.Enum):
    SCHEDULED = "Scheduled"
    COMPLETED = "Completed"

class ScheduledDonation(BaseModel):
    """Scheduled donation snapshot. ``id`` is the scheduled time in epoch seconds."""
    model_config = ConfigDict(frozen=True, from_attributes=True)

    id: int
    donor: str
    hospital: str
    scheduled_for: datetime
    notes: str = ""
    completed: bool = False
    points_earned: int = 0
    completed_at: Optional[datetime] = None

    @field_validator('scheduled_for', 'completed_at')
    @classmethod
    def utc(cls, v):
        return ensure_utc(v) if v is not None else v

    @property
    def key(self) -> str:
        return f"{self.donor}:{self.id}"

    @property
    def status(self) -> DonationStatus:
        return DonationStatus.COMPLETED if self.completed else DonationStatus.SCHEDULED

class DonationScheduleCreate(BaseModel):
    hospital: str = Field(..., min_length=1)
    scheduled_for: datetime
    notes: str = ""

class WalkInDonationCreate(BaseModel):
    hospital: str = Field(..., min_length=1)
    notes: str = ""

class DonationHistoryEntry(BaseModel):
    """One row of a donor's history, as shown on the donor dashboard."""
    id: int
    hospital: str
    scheduled_for: datetime
    status: DonationStatus
    points_earned: int
    notes: str = ""
    completed_at: Optional[datetime] = None
