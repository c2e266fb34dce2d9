"""
Blood request lifecycle.

    pending -> approved -> fulfilled
    pending -> rejected

Fulfillment deducts the requested units from the hospital's inventory and
moves the request to fulfilled inside one ledger transaction: if either step
fails, neither is visible afterwards. Direct pending -> fulfilled is only
allowed when the lifecycle is built with ``allow_direct_fulfillment``.
"""
import logging
import uuid
from collections import Counter
from typing import List, Optional, Union
from uuid import UUID

from bloodchain.core.exceptions import BloodChainError, InvalidTransition, RequestNotFound
from bloodchain.models.blood_request import RequestStatus, Urgency
from bloodchain.models.donor import BloodGroup
from bloodchain.schemas.blood_request import BloodRequest, RequestSummary
from bloodchain.services import transitions
from bloodchain.services.base import LedgerBackedService
from bloodchain.services.inventory import InventoryService

logger = logging.getLogger(__name__)

RequestId = Union[UUID, str]


class RequestLifecycle(LedgerBackedService):

    def __init__(self, *args, inventory: InventoryService, allow_direct_fulfillment: bool = False, **kwargs):
        super().__init__(*args, **kwargs)
        self.inventory = inventory
        self.allow_direct_fulfillment = allow_direct_fulfillment

    @staticmethod
    def _coerce_id(request_id: RequestId) -> UUID:
        if isinstance(request_id, UUID):
            return request_id
        try:
            return UUID(str(request_id))
        except ValueError:
            raise RequestNotFound(request_id) from None

    def create_request(
        self,
        recipient: str,
        hospital: str,
        blood_group: Union[BloodGroup, str],
        units: int,
        urgency: Union[Urgency, str] = Urgency.NORMAL,
        notes: str = "",
    ) -> BloodRequest:
        """
        Open a pending request for ``units`` of ``blood_group`` at ``hospital``.

        Raises:
            InvalidQuantity: units is not a positive integer
        """
        blood_group = transitions.parse_enum(BloodGroup, blood_group, "blood_group")
        urgency = transitions.parse_enum(Urgency, urgency, "urgency")
        request, events = transitions.create_request(
            uuid.uuid4(), recipient, hospital, blood_group, units, urgency, notes, self.now()
        )
        with self.locks.requests.hold(request.id):
            self._ledger("commit_request_transition", request, None)
        logger.info(
            f"Blood request {request.id} created by {recipient}: "
            f"{units} unit(s) {blood_group.value} at {hospital} ({urgency.value})"
        )
        self._publish(events)
        return request

    def get_request(self, request_id: RequestId) -> BloodRequest:
        request_id = self._coerce_id(request_id)
        request = self._ledger("query_request", request_id)
        if request is None:
            raise RequestNotFound(request_id)
        return request

    def list_requests(
        self,
        recipient: Optional[str] = None,
        hospital: Optional[str] = None,
        status: Optional[Union[RequestStatus, str]] = None,
    ) -> List[BloodRequest]:
        """Requests matching every given filter, newest first."""
        if status is not None:
            status = transitions.parse_enum(RequestStatus, status, "status")
        return self._ledger("query_requests", recipient=recipient, hospital=hospital, status=status)

    def summarize_requests(self, recipient: Optional[str] = None, hospital: Optional[str] = None) -> RequestSummary:
        requests = self.list_requests(recipient=recipient, hospital=hospital)
        counts = Counter(r.status for r in requests)
        return RequestSummary(
            total=len(requests),
            pending=counts[RequestStatus.PENDING],
            approved=counts[RequestStatus.APPROVED],
            fulfilled=counts[RequestStatus.FULFILLED],
            rejected=counts[RequestStatus.REJECTED],
        )

    def approve_request(self, request_id: RequestId) -> BloodRequest:
        return self._transition(request_id, RequestStatus.APPROVED)

    def reject_request(self, request_id: RequestId, reason: str) -> BloodRequest:
        return self._transition(request_id, RequestStatus.REJECTED, reason=reason)

    def fulfill_request(self, request_id: RequestId) -> BloodRequest:
        """
        Deduct the request's units from inventory and mark it fulfilled.

        Raises:
            RequestNotFound: unknown request id
            InvalidTransition: the request is not approved (or pending, with direct fulfillment on)
            InsufficientInventory: not enough units; request and inventory are left unchanged
        """
        request_id = self._coerce_id(request_id)
        with self.locks.requests.hold(request_id):
            # hospital and blood group never change, so this read only picks the inventory lock
            target = self.get_request(request_id)
            try:
                # inventory lock spans the transaction so a rollback never clobbers another writer
                with self.locks.inventory.hold((target.hospital, target.blood_group)), \
                        self._atomic("fulfill_request"):
                    request = self.get_request(request_id)
                    updated, events = transitions.transition_request(
                        request, RequestStatus.FULFILLED, self.now(), self.allow_direct_fulfillment
                    )
                    _, inventory_events = self.inventory.apply_adjustment(
                        request.hospital, request.blood_group, -request.units
                    )
                    self._commit_transition(updated, request.status)
            except BloodChainError as e:
                logger.warning(f"Fulfillment of blood request {request_id} rejected: {e}")
                raise
        logger.info(f"Blood request {request_id} fulfilled from {request.hospital} inventory")
        self._publish(inventory_events + events)
        return updated

    def _transition(self, request_id: RequestId, target: RequestStatus, reason: Optional[str] = None) -> BloodRequest:
        request_id = self._coerce_id(request_id)
        with self.locks.requests.hold(request_id), self._atomic("transition_request"):
            request = self.get_request(request_id)
            try:
                updated, events = transitions.transition_request(
                    request, target, self.now(), self.allow_direct_fulfillment, reason=reason
                )
                self._commit_transition(updated, request.status)
            except BloodChainError as e:
                logger.warning(f"Blood request {request_id} -> {target.value} rejected: {e}")
                raise
        logger.info(f"Blood request {request_id} {request.status.value} -> {target.value}")
        self._publish(events)
        return updated

    def _commit_transition(self, updated: BloodRequest, previous_status: RequestStatus) -> None:
        self._commit(
            "commit_request_transition", updated, previous_status,
            entity="request",
            conflict=InvalidTransition(
                f"Blood request {updated.id} is no longer {previous_status.value}",
                request_id=updated.id, current_status=previous_status, target_status=updated.status,
            ),
        )
