from sqlalchemy import Column, Integer, String, Text, DateTime, Enum, Uuid
from bloodchain.database import Base
from bloodchain.models.donor import BloodGroup, enum_values
import enum

class RequestStatus(str, enum.Enum):
    PENDING = "pending"
    APPROVED = "approved"
    FULFILLED = "fulfilled"
    REJECTED = "rejected"

class Urgency(str, enum.Enum):
    NORMAL = "normal"
    URGENT = "urgent"
    EMERGENCY = "emergency"

class BloodRequestModel(Base):
    __tablename__ = "blood_requests"

    id = Column(Uuid, primary_key=True)
    recipient = Column(String(128), nullable=False, index=True)
    hospital = Column(String(128), nullable=False, index=True)
    blood_group = Column(
        Enum(BloodGroup, values_callable=enum_values, native_enum=False, length=8),
        nullable=False,
    )
    units = Column(Integer, nullable=False)
    urgency = Column(
        Enum(Urgency, values_callable=enum_values, native_enum=False, length=16),
        nullable=False,
        default=Urgency.NORMAL,
    )
    status = Column(
        Enum(RequestStatus, values_callable=enum_values, native_enum=False, length=16),
        nullable=False,
        default=RequestStatus.PENDING,
        index=True,
    )
    notes = Column(Text, nullable=False, default="")
    rejection_reason = Column(Text, nullable=True)
    created_at = Column(DateTime(timezone=True), nullable=False)
    updated_at = Column(DateTime(timezone=True), nullable=True)
