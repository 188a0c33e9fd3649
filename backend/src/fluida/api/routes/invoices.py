"""
Invoice endpoints.

Create invoices, look them up by payment link token, and update status.
"""

import logging
from typing import Annotated

from fastapi import APIRouter, Depends, HTTPException, Query, Request, status

from fluida.api.schemas import (
    CreateInvoiceRequest,
    InvoiceListResponse,
    InvoiceResponse,
    ListMeta,
    Pagination,
    UpdateInvoiceStatusRequest,
)
from fluida.domain.models import InvoiceStatus
from fluida.errors import DuplicateInvoiceError, InvoiceNotFoundError
from fluida.services.invoices import InvoiceService

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/invoices", tags=["invoices"])


def get_invoice_service(request: Request) -> InvoiceService:
    """Invoice service wired up by the application lifespan."""
    return request.app.state.invoice_service


InvoiceServiceDep = Annotated[InvoiceService, Depends(get_invoice_service)]


@router.get("", response_model=InvoiceListResponse)
async def list_invoices(
    service: InvoiceServiceDep,
    page: Annotated[int, Query(ge=1)] = 1,
    limit: Annotated[int, Query(ge=1, le=100)] = 10,
) -> InvoiceListResponse:
    """List invoices, newest first."""
    invoices, total = await service.list_invoices(page=page, limit=limit)
    return InvoiceListResponse(
        data=[InvoiceResponse.from_domain(invoice) for invoice in invoices],
        meta=ListMeta(pagination=Pagination(total=total, page=page, limit=limit)),
    )


@router.post(
    "",
    response_model=InvoiceResponse,
    status_code=status.HTTP_201_CREATED,
    responses={
        409: {"description": "Invoice number already exists"},
        422: {"description": "Validation error"},
    },
)
async def create_invoice(
    request: CreateInvoiceRequest,
    service: InvoiceServiceDep,
) -> InvoiceResponse:
    """
    Create a PENDING invoice.

    The response carries the generated ``link_token`` used to build the
    payment link shared with the payer.
    """
    try:
        invoice = await service.create_invoice(request.to_domain())
    except DuplicateInvoiceError as e:
        raise HTTPException(status_code=status.HTTP_409_CONFLICT, detail=str(e))
    return InvoiceResponse.from_domain(invoice)


@router.get(
    "/{token}",
    response_model=InvoiceResponse,
    responses={404: {"description": "Invoice not found"}},
)
async def get_invoice_by_token(token: str, service: InvoiceServiceDep) -> InvoiceResponse:
    """Fetch an invoice by its payment link token."""
    try:
        invoice = await service.get_by_token(token)
    except InvoiceNotFoundError:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Invoice not found")
    return InvoiceResponse.from_domain(invoice)


@router.put(
    "/{invoice_id}/status",
    response_model=InvoiceResponse,
    responses={404: {"description": "Invoice not found"}},
)
async def update_invoice_status(
    invoice_id: int,
    request: UpdateInvoiceStatusRequest,
    service: InvoiceServiceDep,
) -> InvoiceResponse:
    """Set an invoice's status to PENDING, PAID or CANCELED."""
    try:
        invoice = await service.update_status(invoice_id, InvoiceStatus(request.status.value))
    except InvoiceNotFoundError:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Invoice not found")
    return InvoiceResponse.from_domain(invoice)
