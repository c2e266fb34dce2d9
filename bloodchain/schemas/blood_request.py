from pydantic import BaseModel, ConfigDict, Field, field_validator
from typing import Optional
from datetime import datetime
from uuid import UUID
from bloodchain.core.clock import ensure_utc
from bloodchain.models.donor import BloodGroup
from bloodchain.models.blood_request import RequestStatus, Urgency

class BloodRequest(BaseModel):
    model_config = ConfigDict(frozen=True, from_attributes=True)

    id: UUID
    recipient: str
    hospital: str
    blood_group: BloodGroup
    units: int
    urgency: Urgency = Urgency.NORMAL
    status: RequestStatus = RequestStatus.PENDING
    notes: str = ""
    rejection_reason: Optional[str] = None
    created_at: datetime
    updated_at: Optional[datetime] = None

    @field_validator('created_at', 'updated_at')
    @classmethod
    def utc(cls, v):
        return ensure_utc(v) if v is not None else v

class BloodRequestCreate(BaseModel):
    recipient: str = Field(..., min_length=1)
    hospital: str = Field(..., min_length=1)
    blood_group: BloodGroup
    units: int  # range enforced by the request lifecycle (InvalidQuantity)
    urgency: Urgency = Urgency.NORMAL
    notes: str = ""

class BloodRequestReject(BaseModel):
    reason: str = ""

class RequestSummary(BaseModel):
    """Per-status counters for the recipient and hospital dashboards."""
    total: int = 0
    pending: int = 0
    approved: int = 0
    fulfilled: int = 0
    rejected: int = 0
