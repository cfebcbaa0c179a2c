from __future__ import annotations

from typing import Optional

from fastapi import APIRouter, Depends, Query, Request, status
from fastapi.responses import JSONResponse

from ..errors import NotFound
from ..models import (
    ContactCreatedResponse,
    ContactPayload,
    IdentifyContactRequest,
    IdentifyContactResponse,
)
from ..services import IdentifyResult, IdentityReconciler

router = APIRouter(prefix="/api/v1", tags=["contacts"])


def get_reconciler(request: Request) -> IdentityReconciler:
    return request.app.state.reconciler


def _identify_response(result: IdentifyResult) -> IdentifyContactResponse | JSONResponse:
    if isinstance(result, NotFound):
        return JSONResponse(status_code=status.HTTP_404_NOT_FOUND, content={"error": "No matching contact found"})
    return IdentifyContactResponse(contact=result)


@router.post("/contacts", response_model=ContactCreatedResponse, status_code=status.HTTP_201_CREATED)
def create_contact(
    payload: ContactPayload,
    reconciler: IdentityReconciler = Depends(get_reconciler),
) -> ContactCreatedResponse:
    contact = reconciler.reconcile(payload.email, payload.phone_number)
    return ContactCreatedResponse(contact=contact)


@router.post("/identify", response_model=IdentifyContactResponse)
def identify(
    payload: IdentifyContactRequest,
    reconciler: IdentityReconciler = Depends(get_reconciler),
):
    return _identify_response(reconciler.identify(payload.email, payload.phone_number))


@router.get("/contacts/identify", response_model=IdentifyContactResponse)
def identify_by_query(
    email: Optional[str] = Query(default=None),
    phone_number: Optional[str] = Query(default=None, alias="phoneNumber"),
    reconciler: IdentityReconciler = Depends(get_reconciler),
):
    return _identify_response(reconciler.identify(email, phone_number))


__all__ = ["get_reconciler", "router"]
