from sqlalchemy import Column, Integer, String, Boolean, DateTime, Enum
from bloodchain.database import Base
import enum

class BloodGroup(str, enum.Enum):
    A_POS = "A+"
    A_NEG = "A-"
    B_POS = "B+"
    B_NEG = "B-"
    AB_POS = "AB+"
    AB_NEG = "AB-"
    O_POS = "O+"
    O_NEG = "O-"


def enum_values(enum_cls):
    """Persist enum values ("O+") rather than member names ("O_POS")."""
    return [member.value for member in enum_cls]


class DonorModel(Base):
    __tablename__ = "donors"

    identity = Column(String(128), primary_key=True)
    is_registered = Column(Boolean, nullable=False, default=True)
    blood_group = Column(
        Enum(BloodGroup, values_callable=enum_values, native_enum=False, length=8),
        nullable=False,
    )
    reward_points = Column(Integer, nullable=False, default=0)
    last_donation_time = Column(DateTime(timezone=True), nullable=False)  # epoch means never donated
    registered_at = Column(DateTime(timezone=True), nullable=True)
