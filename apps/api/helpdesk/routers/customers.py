"""Customers router - identity maintenance."""

from uuid import UUID

from fastapi import APIRouter, Depends, HTTPException
from sqlalchemy.orm import Session

from helpdesk.core.deps import get_db, require_internal_api_key
from helpdesk.core.exceptions import CustomerNotFoundError
from helpdesk.schemas.customer import CustomerMergeRequest, CustomerRead
from helpdesk.services import customer_service

router = APIRouter(
    prefix="/customers",
    tags=["Customers"],
    dependencies=[Depends(require_internal_api_key)],
)


@router.get("/{customer_id}", response_model=CustomerRead)
def get_customer(customer_id: UUID, db: Session = Depends(get_db)):
    customer = customer_service.get_customer(db, customer_id)
    if not customer:
        raise HTTPException(status_code=404, detail="Customer not found")
    return CustomerRead.model_validate(customer)


@router.post("/{customer_id}/merge", response_model=CustomerRead)
def merge_customer(
    customer_id: UUID,
    data: CustomerMergeRequest,
    db: Session = Depends(get_db),
):
    """Fold `secondary_id` into this customer; its tickets move over and it is deleted."""
    try:
        customer = customer_service.merge_customers(db, customer_id, data.secondary_id)
    except CustomerNotFoundError as exc:
        raise HTTPException(status_code=404, detail=str(exc)) from exc
    except ValueError as exc:
        raise HTTPException(status_code=400, detail=str(exc)) from exc
    return CustomerRead.model_validate(customer)
