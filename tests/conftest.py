import os
import sys
from dataclasses import replace
from datetime import date, datetime, timedelta, timezone
from decimal import Decimal
from pathlib import Path

import pytest

os.environ.setdefault("DATABASE_URL", "sqlite+aiosqlite:///:memory:")
os.environ.setdefault("TOKEN_MINT", "EPjFWdd5AufqSSqeM2qN1xzybapC8G4wEGGkZwyTDt1v")
os.environ.setdefault("WATCHER_ENABLED", "false")

BACKEND_SRC = Path(__file__).resolve().parents[1] / "backend" / "src"
if str(BACKEND_SRC) not in sys.path:
    sys.path.insert(0, str(BACKEND_SRC))

from fluida.domain.models import (  # noqa: E402
    Invoice,
    InvoiceStatus,
    NewInvoice,
    Party,
    SignatureInfo,
    TokenBalance,
    Transaction,
    TransactionMeta,
)
from fluida.errors import DuplicateInvoiceError, InvoiceNotFoundError  # noqa: E402
from fluida.infrastructure.repository import InvoiceRepository  # noqa: E402
from fluida.services.solana import ChainClient  # noqa: E402

TOKEN_MINT = "EPjFWdd5AufqSSqeM2qN1xzybapC8G4wEGGkZwyTDt1v"
OTHER_MINT = "Es9vMFrzaCERmJfrF4H2FYD4KCoNkY11McCe8BenwNYB"
RECEIVER_A = "9WzDXwBbmkg8ZTbNMqUxvQRAyrZzDsGYdLVL9zYtAWWM"
RECEIVER_B = "4Nd1mBQtrMJVYVfKf2PJy9NZUZdTAsp7D4xWLs4gDB4T"
PAYER = "7xKXtg2CW87d97TXJSDpbD5jBkheTqA83TZRuJosgAsU"


class InMemoryInvoiceRepository(InvoiceRepository):
    """Dict-backed repository with switchable failures."""

    def __init__(self, invoices=()):
        self._invoices: dict[int, Invoice] = {}
        self._next_id = 1
        self.update_calls: list[tuple[int, InvoiceStatus]] = []
        self.find_calls = 0
        self.find_error: Exception | None = None
        self.update_errors: dict[int, Exception] = {}
        self.healthy = True
        for invoice in invoices:
            self.add(invoice)

    def add(self, invoice: Invoice) -> Invoice:
        self._invoices[invoice.id] = invoice
        self._next_id = max(self._next_id, invoice.id + 1)
        return invoice

    def status_of(self, invoice_id: int) -> InvoiceStatus:
        return self._invoices[invoice_id].status

    async def find_pending(self):
        self.find_calls += 1
        if self.find_error is not None:
            raise self.find_error
        return [invoice for invoice in self._invoices.values() if invoice.is_pending]

    async def update_status(self, invoice_id, status):
        self.update_calls.append((invoice_id, status))
        if invoice_id in self.update_errors:
            raise self.update_errors[invoice_id]
        invoice = self._invoices.get(invoice_id)
        if invoice is None:
            raise InvoiceNotFoundError(invoice_id)
        updated = replace(invoice, status=status, updated_at=datetime.now(timezone.utc))
        self._invoices[invoice_id] = updated
        return updated

    async def create(self, new_invoice, link_token):
        if any(i.invoice_number == new_invoice.invoice_number for i in self._invoices.values()):
            raise DuplicateInvoiceError(new_invoice.invoice_number)
        created_at = datetime.now(timezone.utc) + timedelta(microseconds=self._next_id)
        invoice = Invoice(
            id=self._next_id,
            invoice_number=new_invoice.invoice_number,
            amount=new_invoice.amount,
            currency=new_invoice.currency,
            receiver_address=new_invoice.receiver_address,
            link_token=link_token,
            description=new_invoice.description,
            due_date=new_invoice.due_date,
            sender=new_invoice.sender,
            recipient=new_invoice.recipient,
            created_at=created_at,
            updated_at=created_at,
        )
        return self.add(invoice)

    async def get_by_link_token(self, link_token):
        return next((i for i in self._invoices.values() if i.link_token == link_token), None)

    async def list_invoices(self, page, limit):
        if self.find_error is not None:
            raise self.find_error
        ordered = sorted(
            self._invoices.values(),
            key=lambda i: (i.created_at or datetime.min.replace(tzinfo=timezone.utc), i.id),
            reverse=True,
        )
        start = (page - 1) * limit
        return ordered[start:start + limit]

    async def count(self):
        if self.find_error is not None:
            raise self.find_error
        return len(self._invoices)

    async def ping(self):
        return self.healthy


class FakeChainClient(ChainClient):
    """Scripted chain: signatures per address, transactions (or errors) per signature."""

    def __init__(self):
        self.signatures: dict[str, list[SignatureInfo]] = {}
        self.transactions: dict[str, Transaction | Exception | None] = {}
        self.signature_errors: dict[str, Exception] = {}
        self.signature_calls: list[tuple[str, int]] = []
        self.transaction_calls: list[str] = []
        self.closed = False

    def add_transaction(self, address: str, transaction: Transaction | Exception | None, signature: str, err=None):
        self.signatures.setdefault(address, []).append(SignatureInfo(signature=signature, err=err))
        self.transactions[signature] = transaction

    async def get_signatures_for_address(self, address, limit):
        self.signature_calls.append((address, limit))
        if address in self.signature_errors:
            raise self.signature_errors[address]
        return self.signatures.get(address, [])[:limit]

    async def get_transaction(self, signature):
        self.transaction_calls.append(signature)
        result = self.transactions.get(signature)
        if isinstance(result, Exception):
            raise result
        return result

    async def close(self):
        self.closed = True


def make_invoice(
    invoice_id: int = 1,
    amount: str = "100.00",
    receiver: str = RECEIVER_A,
    status: InvoiceStatus = InvoiceStatus.PENDING,
) -> Invoice:
    return Invoice(
        id=invoice_id,
        invoice_number=f"INV-{invoice_id:04d}",
        amount=Decimal(amount),
        receiver_address=receiver,
        link_token=f"token-{invoice_id}",
        status=status,
        due_date=date(2026, 12, 31),
        sender=Party(name="Acme Corp", email="billing@acme.test"),
        recipient=Party(name="Jane Doe", email="jane@example.test"),
    )


def make_transfer(
    signature: str,
    receiver: str,
    pre: str,
    post: str,
    mint: str = TOKEN_MINT,
    account_index: int = 1,
    decimals: int = 6,
) -> Transaction:
    """Transaction moving ``post - pre`` raw units into the receiver's token account."""
    payer_pre = TokenBalance(account_index=0, mint=mint, amount="900000000", decimals=decimals, owner=PAYER)
    payer_post = TokenBalance(account_index=0, mint=mint, amount="800000000", decimals=decimals, owner=PAYER)
    return Transaction(
        signature=signature,
        meta=TransactionMeta(
            pre_token_balances=[
                payer_pre,
                TokenBalance(account_index=account_index, mint=mint, amount=pre, decimals=decimals, owner=receiver),
            ],
            post_token_balances=[
                payer_post,
                TokenBalance(account_index=account_index, mint=mint, amount=post, decimals=decimals, owner=receiver),
            ],
        ),
    )


def make_new_invoice(number: str = "INV-1001", amount: str = "250.50") -> NewInvoice:
    return NewInvoice(
        invoice_number=number,
        amount=Decimal(amount),
        receiver_address=RECEIVER_A,
        due_date=date(2026, 11, 30),
        sender=Party(name="Acme Corp", email="billing@acme.test", address="1 Main St"),
        recipient=Party(name="Jane Doe", email="jane@example.test"),
        description="Consulting, October",
    )


@pytest.fixture
def anyio_backend():
    return "asyncio"


@pytest.fixture
def repository():
    return InMemoryInvoiceRepository()


@pytest.fixture
def chain_client():
    return FakeChainClient()

