"""
Payment watcher that reconciles on-chain token transfers with invoices.

Each cycle:
1. Fetch all PENDING invoices
2. For each invoice, scan the receiver's most recent signatures
   (newest first) and stop at the first matching transfer
3. Mark every matched invoice PAID, one transaction per invoice. Steps 1
   and 2 share the cycle time budget; the writes run after it

Errors for one invoice are logged and never stop the others. Nothing
raised here is allowed to crash the host process: the poll loop logs
anything that escapes a cycle and tries again on the next tick.
"""

import asyncio
import logging
from dataclasses import dataclass, field

from fluida.domain.matching import PaymentMatcher
from fluida.domain.models import Invoice, InvoiceStatus
from fluida.errors import ChainRPCError, ParseError, StorageError
from fluida.infrastructure.repository import InvoiceRepository

from .lifecycle import PollLoop
from .solana import ChainClient

logger = logging.getLogger(__name__)


DEFAULT_POLL_INTERVAL = 15.0
DEFAULT_CYCLE_TIMEOUT = 30.0
DEFAULT_SIGNATURE_LIMIT = 10


@dataclass
class CycleReport:
    """Outcome of one poll cycle."""
    checked: int = 0
    paid: list[int] = field(default_factory=list)
    updated: int = 0
    failed: int = 0
    canceled: bool = False
    timed_out: bool = False


class PaymentWatcher:
    """
    Polls the chain for token payments to pending invoices.

    Dependencies are injected so the watcher never reaches for global
    database or RPC handles.

    Example:
        watcher = PaymentWatcher(repository, chain_client, PaymentMatcher(mint))
        watcher.start()
        ...
        await watcher.stop()
        await chain_client.close()
    """

    def __init__(
        self,
        repository: InvoiceRepository,
        chain_client: ChainClient,
        matcher: PaymentMatcher,
        *,
        poll_interval: float = DEFAULT_POLL_INTERVAL,
        cycle_timeout: float = DEFAULT_CYCLE_TIMEOUT,
        signature_limit: int = DEFAULT_SIGNATURE_LIMIT,
    ) -> None:
        """
        Initialize the watcher.

        Args:
            repository: Invoice storage
            chain_client: Read access to the Solana chain
            matcher: Payment matching rules (target mint, tolerance)
            poll_interval: Seconds between cycles
            cycle_timeout: Time budget for the fetch and scan of one cycle
            signature_limit: Recent signatures scanned per invoice
        """
        self.repository = repository
        self.chain_client = chain_client
        self.matcher = matcher
        self.cycle_timeout = cycle_timeout
        self.signature_limit = signature_limit
        self._loop = PollLoop(poll_interval, self.check_pending_invoices, name="payment-watcher")

    @property
    def is_running(self) -> bool:
        return self._loop.is_running

    @property
    def cancelled(self) -> bool:
        return self._loop.stop_requested

    def start(self) -> None:
        """Start polling in a background task. Call at most once."""
        logger.info("Starting Solana payment watcher")
        self._loop.start()

    async def stop(self) -> None:
        """Stop polling and wait for the in-flight cycle to finish. Safe to repeat."""
        await self._loop.stop()
        logger.info("Payment watcher stopped")

    async def check_pending_invoices(self) -> CycleReport:
        """
        Run one reconciliation cycle.

        The scan runs within the cycle time budget. Matches found before
        the budget runs out are still written, outside the budget, so a
        slow receiver can never hold back invoices scanned ahead of it.

        Raises:
            StorageError: If pending invoices cannot be fetched
        """
        report = CycleReport()
        paid: list[Invoice] = []
        try:
            async with asyncio.timeout(self.cycle_timeout):
                await self._scan(report, paid)
        except TimeoutError:
            report.timed_out = True
            logger.warning(
                f"Payment check cycle exceeded {self.cycle_timeout}s budget "
                f"after {report.checked} invoices"
            )

        for invoice in paid:
            await self._mark_paid(invoice, report)

        if report.checked:
            logger.info(
                f"Payment check cycle: checked={report.checked} paid={len(report.paid)} "
                f"updated={report.updated} failed={report.failed}"
            )
        return report

    async def _scan(self, report: CycleReport, paid: list[Invoice]) -> None:
        invoices = await self.repository.find_pending()
        if not invoices:
            logger.debug("No pending invoices")
            return

        for invoice in invoices:
            if self.cancelled:
                report.canceled = True
                logger.info("Payment watcher canceled; skipping remaining invoices")
                break

            report.checked += 1
            try:
                if await self.check_for_payment(invoice):
                    paid.append(invoice)
                    report.paid.append(invoice.id)
            except (ChainRPCError, ParseError) as e:
                report.failed += 1
                logger.warning(f"Error checking payment for invoice {invoice.invoice_number}: {e}")
            except Exception as e:  # guard per invoice
                report.failed += 1
                logger.exception(f"Unexpected error checking invoice {invoice.invoice_number}: {e}")

    async def check_for_payment(self, invoice: Invoice) -> bool:
        """
        Scan the receiver's recent transactions for a payment of this invoice.

        Returns:
            True on the first matching transaction

        Raises:
            ChainRPCError: If a signature or transaction fetch fails
            ParseError: If the receiver address is malformed
        """
        signatures = await self.chain_client.get_signatures_for_address(
            invoice.receiver_address,
            self.signature_limit,
        )

        for info in signatures:
            if self.cancelled:
                return False
            if info.failed:
                continue

            try:
                transaction = await self.chain_client.get_transaction(info.signature)
            except ParseError as e:
                logger.warning(f"Skipping signature for invoice {invoice.invoice_number}: {e}")
                continue

            if transaction is None:
                logger.debug(f"Transaction {info.signature} not found")
                continue

            if self.matcher.matches(transaction, invoice):
                return True

        return False

    async def _mark_paid(self, invoice: Invoice, report: CycleReport) -> None:
        try:
            await self.repository.update_status(invoice.id, InvoiceStatus.PAID)
        except StorageError as e:
            report.failed += 1
            logger.error(f"Failed to update invoice {invoice.invoice_number} to PAID: {e}")
            return
        except Exception as e:  # guard per invoice
            report.failed += 1
            logger.exception(f"Unexpected error marking invoice {invoice.invoice_number} as PAID: {e}")
            return
        report.updated += 1
        logger.info(f"Invoice {invoice.invoice_number} marked as PAID")
