"""/v1/customers - registration, versioned updates, history and compliance flags"""

from datetime import datetime, timezone
from typing import List

from fastapi import APIRouter, Depends, Query

from pawnbook.api.dependencies import get_customer_service
from pawnbook.api.v1.schemas import CustomerFields, CustomerResponse, KycUpdate, WatchlistUpdate
from pawnbook.domain.exceptions import ValidationError
from pawnbook.services.customers import CustomerVersioningService

router = APIRouter()


@router.post("/customers", response_model=CustomerResponse, status_code=201)
def create_customer(
    request_body: CustomerFields,
    service: CustomerVersioningService = Depends(get_customer_service),
):
    """Register a customer; returns the first (current) version"""
    return CustomerResponse.model_validate(service.create_customer(request_body.model_dump(exclude_none=True)))


@router.get("/customers/search", response_model=List[CustomerResponse])
def search_customers(
    q: str = Query("", description="Name, phone or ID number fragment"),
    limit: int = Query(20, gt=0, le=100),
    service: CustomerVersioningService = Depends(get_customer_service),
):
    return [CustomerResponse.model_validate(row) for row in service.search(q, limit)]


@router.get("/customers/{customer_id}", response_model=CustomerResponse)
def get_customer(customer_id: str, service: CustomerVersioningService = Depends(get_customer_service)):
    """Current version, by CUS- id or by any version's customer_key"""
    return CustomerResponse.model_validate(service.get_current(customer_id))


@router.patch("/customers/{customer_key}", response_model=CustomerResponse)
def update_customer(
    customer_key: int,
    request_body: CustomerFields,
    service: CustomerVersioningService = Depends(get_customer_service),
):
    """
    Versioned update: closes the version at customer_key and returns its successor.

    409 when customer_key is no longer current; re-read and retry.
    """
    changes = request_body.model_dump(exclude_unset=True)
    if not changes:
        raise ValidationError("Nothing to update", {"body": "at least one field is required"})
    return CustomerResponse.model_validate(service.update(customer_key, changes))


@router.get("/customers/{customer_id}/history", response_model=List[CustomerResponse])
def get_customer_history(customer_id: str, service: CustomerVersioningService = Depends(get_customer_service)):
    """All versions, newest first"""
    return [CustomerResponse.model_validate(row) for row in service.get_history(customer_id)]


@router.get("/customers/{customer_id}/as-of", response_model=CustomerResponse)
def get_customer_as_of(
    customer_id: str,
    at: datetime = Query(..., description="Naive UTC timestamp"),
    service: CustomerVersioningService = Depends(get_customer_service),
):
    if at.tzinfo is not None:
        at = at.astimezone(timezone.utc).replace(tzinfo=None)
    return CustomerResponse.model_validate(service.get_as_of(customer_id, at))


@router.put("/customers/{customer_key}/watchlist", response_model=CustomerResponse)
def set_watchlist(
    customer_key: int,
    request_body: WatchlistUpdate,
    service: CustomerVersioningService = Depends(get_customer_service),
):
    row = service.set_watchlist_status(customer_key, request_body.status, request_body.notes)
    return CustomerResponse.model_validate(row)


@router.put("/customers/{customer_key}/kyc", response_model=CustomerResponse)
def set_kyc(
    customer_key: int,
    request_body: KycUpdate,
    service: CustomerVersioningService = Depends(get_customer_service),
):
    row = service.set_kyc_status(customer_key, request_body.status, request_body.verified_by)
    return CustomerResponse.model_validate(row)
