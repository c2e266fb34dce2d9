"""
Hospital blood inventory: unit counts per (hospital, blood group).

Records are created lazily on the first adjustment. Units never go negative;
an adjustment that would do so is rejected and leaves the record unchanged.
"""
import logging
from typing import List, Optional, Tuple, Union

from bloodchain.core.exceptions import BloodChainError
from bloodchain.models.donor import BloodGroup
from bloodchain.schemas.inventory import InventoryRecord
from bloodchain.services import transitions
from bloodchain.services.base import LedgerBackedService
from bloodchain.services.events import DomainEvent

logger = logging.getLogger(__name__)

BLOOD_GROUP_ORDER = {group: index for index, group in enumerate(BloodGroup)}


class InventoryService(LedgerBackedService):

    def get_units(self, hospital: str, blood_group: Union[BloodGroup, str]) -> int:
        record = self.get_record(hospital, blood_group)
        return record.units if record is not None else 0

    def get_record(self, hospital: str, blood_group: Union[BloodGroup, str]) -> Optional[InventoryRecord]:
        return self._ledger(
            "query_inventory", hospital, transitions.parse_enum(BloodGroup, blood_group, "blood_group")
        )

    def list_inventory(self, hospital: str) -> List[InventoryRecord]:
        records = self._ledger("query_hospital_inventory", hospital)
        return sorted(records, key=lambda r: BLOOD_GROUP_ORDER[r.blood_group])

    def adjust_units(self, hospital: str, blood_group: Union[BloodGroup, str], delta: int) -> InventoryRecord:
        """
        Add (positive delta) or remove (negative delta) units.

        Raises:
            InsufficientInventory: the result would be negative
            InvalidQuantity: delta is not an integer
        """
        blood_group = transitions.parse_enum(BloodGroup, blood_group, "blood_group")
        with self.locks.inventory.hold((hospital, blood_group)):
            with self._atomic("adjust_units"):
                record, events = self.apply_adjustment(hospital, blood_group, delta)
        self._publish(events)
        return record

    def apply_adjustment(
        self, hospital: str, blood_group: BloodGroup, delta: int
    ) -> Tuple[InventoryRecord, List[DomainEvent]]:
        """Adjust and commit inside the caller's lock and transaction; events are returned, not published."""
        with self.locks.inventory.hold((hospital, blood_group)):
            current = self._ledger("query_inventory", hospital, blood_group)
            try:
                record, events = transitions.adjust_inventory(current, hospital, blood_group, delta, self.now())
            except BloodChainError as e:
                logger.warning(f"Inventory adjustment rejected for {hospital}/{blood_group.value}: {e}")
                raise
            self._ledger("commit_inventory_adjustment", record, _units(current))
        logger.info(f"Inventory {hospital}/{blood_group.value} {delta:+d} -> {record.units}")
        return record, events

    def set_units(self, hospital: str, blood_group: Union[BloodGroup, str], units: int) -> InventoryRecord:
        """
        Administrative override of the unit count.

        Raises:
            InvalidQuantity: units is negative or not an integer
        """
        blood_group = transitions.parse_enum(BloodGroup, blood_group, "blood_group")
        with self.locks.inventory.hold((hospital, blood_group)):
            with self._atomic("set_units"):
                current = self._ledger("query_inventory", hospital, blood_group)
                record, events = transitions.set_inventory(current, hospital, blood_group, units, self.now())
                self._ledger("commit_inventory_adjustment", record, _units(current))
        logger.info(f"Inventory {hospital}/{blood_group.value} set to {record.units}")
        self._publish(events)
        return record


def _units(record: Optional[InventoryRecord]) -> Optional[int]:
    return record.units if record is not None else None
