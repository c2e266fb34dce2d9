from pydantic import BaseModel, ConfigDict, Field, field_validator
from datetime import datetime
from bloodchain.core.clock import ensure_utc
from bloodchain.models.donor import BloodGroup

class InventoryRecord(BaseModel):
    model_config = ConfigDict(frozen=True, from_attributes=True)

    hospital: str
    blood_group: BloodGroup
    units: int = Field(0, ge=0)
    last_updated: datetime

    @field_validator('last_updated')
    @classmethod
    def utc(cls, v):
        return ensure_utc(v)

    @property
    def key(self) -> str:
        return f"{self.hospital}:{self.blood_group.value}"

class InventorySet(BaseModel):
    units: int

class InventoryAdjust(BaseModel):
    delta: int

class InventoryLevel(BaseModel):
    hospital: str
    blood_group: BloodGroup
    units: int
