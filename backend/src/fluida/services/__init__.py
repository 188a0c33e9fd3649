"""
Services package - Business logic and external integrations.

Includes the Solana RPC client, the payment watcher and invoice operations.
"""

from .invoices import InvoiceService
from .lifecycle import PollLoop
from .solana import ChainClient, SolanaChainClient, SolanaNetwork
from .watcher import CycleReport, PaymentWatcher

__all__ = [
    "ChainClient",
    "CycleReport",
    "InvoiceService",
    "PaymentWatcher",
    "PollLoop",
    "SolanaChainClient",
    "SolanaNetwork",
]
