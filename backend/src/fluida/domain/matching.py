"""
Payment matching rules for SPL token transfers.

Decides whether a fetched transaction pays a given invoice by diffing the
receiver's token balance before and after the transaction.

Design Decisions:
- Balances are paired by account index, not by position in the list
- The configured token decimals are used, never the per-entry value
- Decimal comparison uses explicit tolerance for rounding differences
- First qualifying balance entry wins; partial transfers are not summed
"""

import logging
from dataclasses import dataclass
from decimal import Decimal

from fluida.errors import ParseError

from .amounts import convert_token_amount
from .models import Invoice, TokenBalance, TokenBalanceDelta, Transaction

logger = logging.getLogger(__name__)


# Default tolerance when comparing transfer deltas to invoice amounts
DEFAULT_AMOUNT_TOLERANCE = Decimal("0.001")

# USDC and most stablecoins on Solana use 6 decimals
DEFAULT_TOKEN_DECIMALS = 6


def compute_delta(
    pre: TokenBalance,
    post: TokenBalance,
    decimals: int,
) -> TokenBalanceDelta:
    """
    Pair a pre- and post-transaction balance of one token account.

    Raises:
        ParseError: If either raw amount is malformed
    """
    return TokenBalanceDelta(
        mint=post.mint,
        owner=post.owner,
        pre_amount=convert_token_amount(pre.amount, decimals),
        post_amount=convert_token_amount(post.amount, decimals),
    )


@dataclass(frozen=True)
class PaymentMatcher:
    """
    Matches token transfers against invoices.

    Stateless: the same transaction and invoice always give the same answer.

    Example:
        matcher = PaymentMatcher(token_mint="EPjFW...")
        if matcher.matches(tx, invoice):
            ...
    """
    token_mint: str
    token_decimals: int = DEFAULT_TOKEN_DECIMALS
    tolerance: Decimal = DEFAULT_AMOUNT_TOLERANCE

    def matches(
        self,
        transaction: Transaction | None,
        invoice: Invoice,
        receiver_address: str | None = None,
    ) -> bool:
        """
        Check whether a transaction is a qualifying payment for an invoice.

        Args:
            transaction: Fetched transaction (may be None)
            invoice: Invoice being settled
            receiver_address: Expected token owner. Defaults to the invoice's receiver.

        Returns:
            True if a balance entry of the target mint owned by the receiver
            grew by the invoice amount, within tolerance
        """
        if transaction is None or transaction.meta is None:
            return False

        receiver = receiver_address or invoice.receiver_address
        pre_by_index = {
            balance.account_index: balance
            for balance in transaction.meta.pre_token_balances
        }

        for post in transaction.meta.post_token_balances:
            if post.mint != self.token_mint:
                continue
            if not post.owner or post.owner != receiver:
                continue

            pre = pre_by_index.get(post.account_index)
            if pre is None:
                # No baseline to diff against
                continue

            try:
                delta = compute_delta(pre, post, self.token_decimals).delta
            except ParseError as e:
                logger.warning(
                    f"Skipping balance entry {post.account_index} of {transaction.signature}: {e}"
                )
                continue

            if abs(delta - invoice.amount) <= self.tolerance:
                logger.info(
                    f"Transaction {transaction.signature} pays {delta} "
                    f"to {receiver} for invoice {invoice.invoice_number}"
                )
                return True

        return False
