from sqlalchemy import CheckConstraint, Column, Integer, String, DateTime, Enum
from bloodchain.database import Base
from bloodchain.models.donor import BloodGroup, enum_values

class InventoryRecordModel(Base):
    __tablename__ = "inventory_records"
    __table_args__ = (
        CheckConstraint("units >= 0", name="ck_inventory_units_non_negative"),
    )

    hospital = Column(String(128), primary_key=True)
    blood_group = Column(
        Enum(BloodGroup, values_callable=enum_values, native_enum=False, length=8),
        primary_key=True,
    )
    units = Column(Integer, nullable=False, default=0)
    last_updated = Column(DateTime(timezone=True), nullable=False)
