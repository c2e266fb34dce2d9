from fastapi import APIRouter, Depends, status
from typing import List, Optional
from uuid import UUID
import logging
from bloodchain.api.deps import get_coordinator
from bloodchain.models.blood_request import RequestStatus
from bloodchain.schemas.blood_request import (
    BloodRequest,
    BloodRequestCreate,
    BloodRequestReject,
    RequestSummary,
)
from bloodchain.services.coordinator import BloodBankCoordinator

logger = logging.getLogger(__name__)
router = APIRouter()

@router.post("/", response_model=BloodRequest, status_code=status.HTTP_201_CREATED)
def create_request(
    payload: BloodRequestCreate,
    coordinator: BloodBankCoordinator = Depends(get_coordinator),
):
    logger.info(
        f"Blood request submitted by {payload.recipient}: {payload.units} unit(s) "
        f"{payload.blood_group.value} at {payload.hospital}"
    )
    return coordinator.requests.create_request(
        payload.recipient,
        payload.hospital,
        payload.blood_group,
        payload.units,
        payload.urgency,
        payload.notes,
    )

@router.get("/", response_model=List[BloodRequest])
def list_requests(
    recipient: Optional[str] = None,
    hospital: Optional[str] = None,
    status: Optional[RequestStatus] = None,
    coordinator: BloodBankCoordinator = Depends(get_coordinator),
):
    """Requests filtered by recipient, hospital and/or status, newest first."""
    return coordinator.requests.list_requests(recipient=recipient, hospital=hospital, status=status)

@router.get("/summary", response_model=RequestSummary)
def summarize_requests(
    recipient: Optional[str] = None,
    hospital: Optional[str] = None,
    coordinator: BloodBankCoordinator = Depends(get_coordinator),
):
    return coordinator.requests.summarize_requests(recipient=recipient, hospital=hospital)

@router.get("/{request_id}", response_model=BloodRequest)
def get_request(request_id: UUID, coordinator: BloodBankCoordinator = Depends(get_coordinator)):
    return coordinator.requests.get_request(request_id)

@router.post("/{request_id}/approve", response_model=BloodRequest)
def approve_request(request_id: UUID, coordinator: BloodBankCoordinator = Depends(get_coordinator)):
    logger.info(f"Approval requested for blood request {request_id}")
    return coordinator.requests.approve_request(request_id)

@router.post("/{request_id}/fulfill", response_model=BloodRequest)
def fulfill_request(request_id: UUID, coordinator: BloodBankCoordinator = Depends(get_coordinator)):
    """Deduct units from the hospital inventory and mark the request fulfilled."""
    logger.info(f"Fulfillment requested for blood request {request_id}")
    return coordinator.requests.fulfill_request(request_id)

@router.post("/{request_id}/reject", response_model=BloodRequest)
def reject_request(
    request_id: UUID,
    payload: BloodRequestReject,
    coordinator: BloodBankCoordinator = Depends(get_coordinator),
):
    logger.info(f"Rejection requested for blood request {request_id}")
    return coordinator.requests.reject_request(request_id, payload.reason)
