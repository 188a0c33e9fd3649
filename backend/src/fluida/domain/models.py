"""
Domain models for invoices and the on-chain records used to settle them.

Design Decisions:
- Using dataclasses for immutable, typed domain objects
- Decimal for all monetary values to avoid floating-point errors
- Chain records keep raw integer amounts as strings, exactly as the RPC
  node reports them; conversion happens in domain.amounts
"""

from dataclasses import dataclass, field
from datetime import date, datetime
from decimal import Decimal
from enum import Enum


class InvoiceStatus(str, Enum):
    """Lifecycle states of an invoice."""
    PENDING = "PENDING"
    PAID = "PAID"
    CANCELED = "CANCELED"


@dataclass(frozen=True)
class Party:
    """Sender or recipient of an invoice."""
    name: str
    email: str
    address: str | None = None


@dataclass(frozen=True)
class Invoice:
    """
    A request for payment with a fixed amount, currency and receiving account.

    The receiver address and link token are fixed at creation. Status is
    the only field the payment watcher ever changes (PENDING -> PAID).
    """
    id: int
    invoice_number: str
    amount: Decimal
    receiver_address: str
    link_token: str
    currency: str = "USDC"
    status: InvoiceStatus = InvoiceStatus.PENDING
    description: str = ""
    due_date: date | None = None
    sender: Party | None = None
    recipient: Party | None = None
    created_at: datetime | None = None
    updated_at: datetime | None = None

    @property
    def is_pending(self) -> bool:
        return self.status == InvoiceStatus.PENDING


@dataclass(frozen=True)
class NewInvoice:
    """Validated input for creating an invoice. ID and link token are assigned on insert."""
    invoice_number: str
    amount: Decimal
    receiver_address: str
    due_date: date
    sender: Party
    recipient: Party
    currency: str = "USDC"
    description: str = ""


@dataclass(frozen=True)
class SignatureInfo:
    """
    Reference to one on-chain transaction touching an address.

    A non-null ``err`` means the transaction failed on chain and can never
    count as a payment.
    """
    signature: str
    err: object | None = None
    slot: int | None = None
    block_time: int | None = None

    @property
    def failed(self) -> bool:
        return self.err is not None


@dataclass(frozen=True)
class TokenBalance:
    """SPL token account balance before or after a transaction."""
    account_index: int
    mint: str
    amount: str  # raw integer units, e.g. "100000000"
    decimals: int
    owner: str | None = None


@dataclass(frozen=True)
class TransactionMeta:
    """Execution metadata of a confirmed transaction."""
    pre_token_balances: list[TokenBalance] = field(default_factory=list)
    post_token_balances: list[TokenBalance] = field(default_factory=list)
    err: object | None = None


@dataclass(frozen=True)
class Transaction:
    """A fetched transaction. ``meta`` is None when the node omits it."""
    signature: str
    meta: TransactionMeta | None = None
    slot: int | None = None
    block_time: int | None = None


@dataclass(frozen=True)
class TokenBalanceDelta:
    """Change of one token account's balance across a transaction."""
    mint: str
    owner: str | None
    pre_amount: Decimal
    post_amount: Decimal

    @property
    def delta(self) -> Decimal:
        return self.post_amount - self.pre_amount
