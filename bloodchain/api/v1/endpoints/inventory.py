from fastapi import APIRouter, Depends
from typing import List
import logging
from bloodchain.api.deps import get_coordinator
from bloodchain.models.donor import BloodGroup
from bloodchain.schemas.inventory import InventoryAdjust, InventoryLevel, InventoryRecord, InventorySet
from bloodchain.services.coordinator import BloodBankCoordinator

logger = logging.getLogger(__name__)
router = APIRouter()

@router.get("/{hospital}", response_model=List[InventoryRecord])
def list_inventory(hospital: str, coordinator: BloodBankCoordinator = Depends(get_coordinator)):
    return coordinator.inventory.list_inventory(hospital)

@router.get("/{hospital}/{blood_group}", response_model=InventoryLevel)
def get_units(
    hospital: str,
    blood_group: BloodGroup,
    coordinator: BloodBankCoordinator = Depends(get_coordinator),
):
    """Current units; 0 when the hospital has no record for the group yet."""
    return InventoryLevel(
        hospital=hospital,
        blood_group=blood_group,
        units=coordinator.inventory.get_units(hospital, blood_group),
    )

@router.put("/{hospital}/{blood_group}", response_model=InventoryRecord)
def set_units(
    hospital: str,
    blood_group: BloodGroup,
    payload: InventorySet,
    coordinator: BloodBankCoordinator = Depends(get_coordinator),
):
    logger.info(f"Inventory override requested: {hospital}/{blood_group.value} = {payload.units}")
    return coordinator.inventory.set_units(hospital, blood_group, payload.units)

@router.post("/{hospital}/{blood_group}/adjust", response_model=InventoryRecord)
def adjust_units(
    hospital: str,
    blood_group: BloodGroup,
    payload: InventoryAdjust,
    coordinator: BloodBankCoordinator = Depends(get_coordinator),
):
    logger.info(f"Inventory adjustment requested: {hospital}/{blood_group.value} {payload.delta:+d}")
    return coordinator.inventory.adjust_units(hospital, blood_group, payload.delta)
