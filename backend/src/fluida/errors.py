"""
Exception taxonomy shared by the watcher, repository and API layers.

None of these are fatal to the process. The payment watcher logs them
and moves on; the API maps them to HTTP status codes.
"""


class FluidaError(Exception):
    """Base class for all application errors."""


class ParseError(FluidaError):
    """Malformed numeric amount, address or signature string."""


class ChainRPCError(FluidaError):
    """Transient failure talking to the Solana RPC endpoint."""


class StorageError(FluidaError):
    """Repository read or write failure."""


class InvoiceNotFoundError(StorageError):
    """The requested invoice row does not exist."""

    def __init__(self, key: object) -> None:
        super().__init__(f"Invoice not found: {key}")
        self.key = key


class DuplicateInvoiceError(FluidaError):
    """An invoice with the same invoice number already exists."""

    def __init__(self, invoice_number: str) -> None:
        super().__init__(
            f"Invoice number {invoice_number} already exists. "
            "Please use a different invoice number"
        )
        self.invoice_number = invoice_number
