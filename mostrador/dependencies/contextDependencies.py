from typing import Annotated
from fastapi import Depends, Request, HTTPException, status
from uuid import UUID
from mostrador.modules.notifications.service import Notifier, get_notifier


def get_cashier_id(request: Request) -> UUID:
    """Extract cashier_id from request state set by CashierContextMiddleware"""
    cashier_id = getattr(request.state, "cashier_id", None)
    if cashier_id is None:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="Cashier context not found. Ensure X-Cashier-ID header is provided."
        )
    return cashier_id


def get_location_id(request: Request) -> UUID:
    """Extract the cashier's assigned location from request state"""
    location_id = getattr(request.state, "location_id", None)
    if location_id is None:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="Location context not found. Ensure X-Location-ID header is provided."
        )
    return location_id


CashierId = Annotated[UUID, Depends(get_cashier_id)]
LocationId = Annotated[UUID, Depends(get_location_id)]
NotifierDep = Annotated[Notifier, Depends(get_notifier)]
