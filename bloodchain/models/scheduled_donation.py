from sqlalchemy import BigInteger, Column, Integer, String, Text, Boolean, DateTime, ForeignKey
from bloodchain.database import Base

class ScheduledDonationModel(Base):
    __tablename__ = "scheduled_donations"

    # (donor, id) is the natural key; id is the scheduled time in epoch seconds
    donor = Column(String(128), ForeignKey("donors.identity"), primary_key=True)
    id = Column(BigInteger, primary_key=True, autoincrement=False)
    hospital = Column(String(128), nullable=False, index=True)
    scheduled_for = Column(DateTime(timezone=True), nullable=False)
    notes = Column(Text, nullable=False, default="")
    completed = Column(Boolean, nullable=False, default=False)
    points_earned = Column(Integer, nullable=False, default=0)
    completed_at = Column(DateTime(timezone=True), nullable=True)
