"""
Invoice persistence behind an abstract repository interface.

The payment watcher and the invoice service depend only on
InvoiceRepository; the SQLAlchemy implementation is wired in at startup
and tests substitute an in-memory double.

Design Decisions:
- Abstract interface for multiple backends
- One session and one transaction per operation, so a failed write for
  one invoice never affects another
- Driver errors are wrapped in StorageError at this boundary
"""

import logging
from abc import ABC, abstractmethod
from datetime import datetime, timezone
from decimal import Decimal

from sqlalchemy import func, select, text
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from fluida.domain.models import Invoice, InvoiceStatus, NewInvoice, Party
from fluida.errors import DuplicateInvoiceError, InvoiceNotFoundError, StorageError

from .database import InvoiceRecord

logger = logging.getLogger(__name__)

# Connection failures surface as OSError from some async drivers
_DB_ERRORS = (SQLAlchemyError, OSError)


class InvoiceRepository(ABC):
    """Abstract interface for invoice storage backends."""

    @abstractmethod
    async def find_pending(self) -> list[Invoice]:
        """Return all invoices with status PENDING."""
        pass

    @abstractmethod
    async def update_status(self, invoice_id: int, status: InvoiceStatus) -> Invoice:
        """Set an invoice's status in its own transaction and return the updated invoice."""
        pass

    @abstractmethod
    async def create(self, new_invoice: NewInvoice, link_token: str) -> Invoice:
        """Insert a PENDING invoice. Raises DuplicateInvoiceError on a reused number."""
        pass

    @abstractmethod
    async def get_by_link_token(self, link_token: str) -> Invoice | None:
        pass

    @abstractmethod
    async def list_invoices(self, page: int, limit: int) -> list[Invoice]:
        """Return one page of invoices, newest first. Pages start at 1."""
        pass

    @abstractmethod
    async def count(self) -> int:
        pass

    async def ping(self) -> bool:
        """Return True if the backend is reachable."""
        return True


def _party_to_json(party: Party) -> dict:
    data = {"name": party.name, "email": party.email}
    if party.address:
        data["address"] = party.address
    return data


def _party_from_json(data: dict | None) -> Party | None:
    if not data:
        return None
    return Party(
        name=data.get("name", ""),
        email=data.get("email", ""),
        address=data.get("address"),
    )


def record_to_invoice(record: InvoiceRecord) -> Invoice:
    """Convert a database row into a domain invoice."""
    return Invoice(
        id=record.id,
        invoice_number=record.invoice_number,
        amount=Decimal(record.amount),
        currency=record.currency,
        status=InvoiceStatus(record.status),
        receiver_address=record.receiver_address,
        link_token=record.link_token,
        description=record.description or "",
        due_date=record.due_date,
        sender=_party_from_json(record.sender_details),
        recipient=_party_from_json(record.recipient_details),
        created_at=record.created_at,
        updated_at=record.updated_at,
    )


class SQLAlchemyInvoiceRepository(InvoiceRepository):
    """
    Invoice repository backed by async SQLAlchemy.

    Example:
        repo = SQLAlchemyInvoiceRepository(get_session_factory())
        pending = await repo.find_pending()
    """

    def __init__(self, session_factory: async_sessionmaker[AsyncSession]) -> None:
        self._session_factory = session_factory

    async def find_pending(self) -> list[Invoice]:
        query = select(InvoiceRecord).where(InvoiceRecord.status == InvoiceStatus.PENDING.value)
        try:
            async with self._session_factory() as session:
                result = await session.scalars(query)
                return [record_to_invoice(record) for record in result]
        except _DB_ERRORS as e:
            raise StorageError(f"Failed to fetch pending invoices: {e}") from e

    async def update_status(self, invoice_id: int, status: InvoiceStatus) -> Invoice:
        try:
            async with self._session_factory() as session:
                async with session.begin():
                    record = await session.get(InvoiceRecord, invoice_id)
                    if record is None:
                        raise InvoiceNotFoundError(invoice_id)
                    record.status = status.value
                    record.updated_at = datetime.now(timezone.utc)
                return record_to_invoice(record)
        except _DB_ERRORS as e:
            raise StorageError(f"Failed to update invoice {invoice_id}: {e}") from e

    async def create(self, new_invoice: NewInvoice, link_token: str) -> Invoice:
        record = InvoiceRecord(
            invoice_number=new_invoice.invoice_number,
            amount=new_invoice.amount,
            currency=new_invoice.currency,
            description=new_invoice.description,
            due_date=new_invoice.due_date,
            status=InvoiceStatus.PENDING.value,
            receiver_address=new_invoice.receiver_address,
            link_token=link_token,
            sender_details=_party_to_json(new_invoice.sender),
            recipient_details=_party_to_json(new_invoice.recipient),
        )
        try:
            async with self._session_factory() as session:
                async with session.begin():
                    existing = await session.scalar(
                        select(InvoiceRecord.id).where(
                            InvoiceRecord.invoice_number == new_invoice.invoice_number
                        )
                    )
                    if existing is not None:
                        raise DuplicateInvoiceError(new_invoice.invoice_number)
                    session.add(record)
                return record_to_invoice(record)
        except IntegrityError as e:
            # Lost a race with a concurrent insert of the same number
            raise DuplicateInvoiceError(new_invoice.invoice_number) from e
        except _DB_ERRORS as e:
            raise StorageError(f"Failed to create invoice: {e}") from e

    async def get_by_link_token(self, link_token: str) -> Invoice | None:
        query = select(InvoiceRecord).where(InvoiceRecord.link_token == link_token)
        try:
            async with self._session_factory() as session:
                record = await session.scalar(query)
                return record_to_invoice(record) if record else None
        except _DB_ERRORS as e:
            raise StorageError(f"Failed to fetch invoice by token: {e}") from e

    async def list_invoices(self, page: int, limit: int) -> list[Invoice]:
        query = (
            select(InvoiceRecord)
            .order_by(InvoiceRecord.created_at.desc(), InvoiceRecord.id.desc())
            .offset((page - 1) * limit)
            .limit(limit)
        )
        try:
            async with self._session_factory() as session:
                result = await session.scalars(query)
                return [record_to_invoice(record) for record in result]
        except _DB_ERRORS as e:
            raise StorageError(f"Failed to list invoices: {e}") from e

    async def count(self) -> int:
        try:
            async with self._session_factory() as session:
                return await session.scalar(select(func.count()).select_from(InvoiceRecord)) or 0
        except _DB_ERRORS as e:
            raise StorageError(f"Failed to count invoices: {e}") from e

    async def ping(self) -> bool:
        try:
            async with self._session_factory() as session:
                await session.execute(text("SELECT 1"))
            return True
        except _DB_ERRORS as e:
            logger.warning(f"Database ping failed: {e}")
            return False
