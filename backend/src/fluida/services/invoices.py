"""
Invoice business operations used by the HTTP API.
"""

import logging
from uuid import uuid4

from fluida.domain.models import Invoice, InvoiceStatus, NewInvoice
from fluida.errors import InvoiceNotFoundError
from fluida.infrastructure.repository import InvoiceRepository

logger = logging.getLogger(__name__)


class InvoiceService:
    """Create, look up and update invoices through a repository."""

    def __init__(self, repository: InvoiceRepository) -> None:
        self.repository = repository

    async def list_invoices(self, page: int = 1, limit: int = 10) -> tuple[list[Invoice], int]:
        """Return one page of invoices (newest first) and the total count."""
        total = await self.repository.count()
        invoices = await self.repository.list_invoices(page, limit)
        return invoices, total

    async def get_by_token(self, link_token: str) -> Invoice:
        """
        Fetch an invoice by its payment link token.

        Raises:
            InvoiceNotFoundError: If no invoice has this token
        """
        invoice = await self.repository.get_by_link_token(link_token)
        if invoice is None:
            raise InvoiceNotFoundError(link_token)
        return invoice

    async def create_invoice(self, new_invoice: NewInvoice) -> Invoice:
        """
        Create a PENDING invoice with a fresh payment link token.

        Raises:
            DuplicateInvoiceError: If the invoice number is already taken
        """
        invoice = await self.repository.create(new_invoice, link_token=str(uuid4()))
        logger.info(f"Invoice #{invoice.invoice_number} created with token: {invoice.link_token}")
        return invoice

    async def update_status(self, invoice_id: int, status: InvoiceStatus) -> Invoice:
        """
        Set an invoice's status.

        Manual updates race with the payment watcher; the last write wins.

        Raises:
            InvoiceNotFoundError: If the invoice does not exist
        """
        invoice = await self.repository.update_status(invoice_id, status)
        logger.info(f"Invoice #{invoice.invoice_number} status set to {status.value}")
        return invoice
