"""
Balance accumulator service.

Keeps one running point total per customer. Credits are applied with a
single ``F()`` update so concurrent credits never lose an increment.
"""

import logging
from uuid import UUID

from .exceptions import VoucherValidationError
from .repository import LedgerRepository

logger = logging.getLogger(__name__)


def _is_positive_int(value) -> bool:
    return isinstance(value, int) and not isinstance(value, bool) and value > 0


def open_balance(*, customer_id: UUID, repo: LedgerRepository = None) -> int:
    """Create the zero balance row for a new customer. Returns the current total."""
    repo = repo or LedgerRepository()
    return repo.create_balance(customer_id).total_points


def credit(*, customer_id: UUID, amount: int, repo: LedgerRepository = None) -> int:
    """
    Add points to a customer's balance.

    The row is created with ``amount`` when the customer has none yet.

    Args:
        customer_id: UUID of the customer
        amount: Positive number of points

    Returns:
        The new balance total

    Raises:
        VoucherValidationError: If amount is not a positive integer
    """
    if not _is_positive_int(amount):
        raise VoucherValidationError("Credit amount must be a positive integer")

    repo = repo or LedgerRepository()
    total = repo.increment_balance(customer_id, amount)
    logger.debug("Credited %s points to %s (total %s)", amount, customer_id, total)
    return total


def get_balance(*, customer_id: UUID, repo: LedgerRepository = None) -> int:
    """Current total for a customer; zero when no balance row exists."""
    repo = repo or LedgerRepository()
    return repo.balance_of(customer_id)


def is_consistent(*, customer_id: UUID, repo: LedgerRepository = None) -> bool:
    """
    Check the stored total against the transaction log.

    The balance must equal earned points minus redeemed points.
    """
    repo = repo or LedgerRepository()
    totals = repo.earned_and_redeemed_totals(customer_id)
    expected = totals['earned'] - totals['redeemed']
    return repo.balance_of(customer_id) == expected
