"""
Pydantic schemas for API request/response validation.

These schemas define the contract between frontend and backend.
All monetary values are serialized as strings to avoid floating point issues.
"""

from datetime import date, datetime
from decimal import Decimal
from enum import Enum

from pydantic import BaseModel, Field

from fluida.domain.models import Invoice, NewInvoice, Party

# Base58 alphabet, 32-44 characters (Solana public keys)
SOLANA_ADDRESS_PATTERN = r"^[1-9A-HJ-NP-Za-km-z]{32,44}$"

EMAIL_PATTERN = r"^[^@\s]+@[^@\s]+\.[^@\s]+$"


class InvoiceStatusEnum(str, Enum):
    """Invoice status for API requests and responses."""
    PENDING = "PENDING"
    PAID = "PAID"
    CANCELED = "CANCELED"


# =============================================================================
# Request Schemas
# =============================================================================

class PartySchema(BaseModel):
    """Sender or recipient details."""
    name: str = Field(..., min_length=1, max_length=255)
    email: str = Field(..., max_length=255, pattern=EMAIL_PATTERN)
    address: str | None = Field(default=None, max_length=512)

    def to_domain(self) -> Party:
        return Party(name=self.name.strip(), email=self.email, address=self.address or None)


class CreateInvoiceRequest(BaseModel):
    """Request to create a new invoice."""
    invoice_number: str = Field(..., min_length=1, max_length=50)
    amount: Decimal = Field(
        ...,
        gt=0,
        max_digits=12,
        decimal_places=2,
        description="Amount in token units, e.g. 100.50",
    )
    currency: str = Field(default="USDC", min_length=1, max_length=10)
    description: str = Field(default="", max_length=2000)
    due_date: date
    receiver_address: str = Field(
        ...,
        description="Solana wallet address receiving the payment",
        pattern=SOLANA_ADDRESS_PATTERN,
    )
    sender_details: PartySchema
    recipient_details: PartySchema

    def to_domain(self) -> NewInvoice:
        return NewInvoice(
            invoice_number=self.invoice_number.strip(),
            amount=self.amount,
            currency=self.currency,
            description=self.description,
            due_date=self.due_date,
            receiver_address=self.receiver_address,
            sender=self.sender_details.to_domain(),
            recipient=self.recipient_details.to_domain(),
        )


class UpdateInvoiceStatusRequest(BaseModel):
    """Request to change an invoice's status."""
    status: InvoiceStatusEnum


# =============================================================================
# Response Schemas
# =============================================================================

class InvoiceResponse(BaseModel):
    """Invoice as returned by the API."""
    id: int
    invoice_number: str
    amount: str
    currency: str
    description: str
    due_date: date | None = None
    status: InvoiceStatusEnum
    receiver_address: str
    link_token: str
    sender_details: PartySchema | None = None
    recipient_details: PartySchema | None = None
    created_at: datetime | None = None
    updated_at: datetime | None = None

    @classmethod
    def from_domain(cls, invoice: Invoice) -> "InvoiceResponse":
        return cls(
            id=invoice.id,
            invoice_number=invoice.invoice_number,
            amount=str(invoice.amount),
            currency=invoice.currency,
            description=invoice.description,
            due_date=invoice.due_date,
            status=InvoiceStatusEnum(invoice.status.value),
            receiver_address=invoice.receiver_address,
            link_token=invoice.link_token,
            sender_details=_party_response(invoice.sender),
            recipient_details=_party_response(invoice.recipient),
            created_at=invoice.created_at,
            updated_at=invoice.updated_at,
        )


def _party_response(party: Party | None) -> PartySchema | None:
    if party is None:
        return None
    return PartySchema.model_construct(name=party.name, email=party.email, address=party.address)


class Pagination(BaseModel):
    total: int
    page: int
    limit: int


class ListMeta(BaseModel):
    pagination: Pagination


class InvoiceListResponse(BaseModel):
    """Paginated list of invoices."""
    data: list[InvoiceResponse]
    meta: ListMeta


class HealthResponse(BaseModel):
    """Health check response."""
    status: str = "healthy"
    version: str
    database: str = "connected"
    solana_network: str
    watcher_running: bool = False


class ErrorResponse(BaseModel):
    """Standard error response."""
    error: str
    detail: str | None = None
    code: str | None = None
