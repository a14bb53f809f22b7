"""
Share-based liquidity pool accounting.

Depositors own shares; a share redeems for balance / total_shares. Financing
moves cash out of the balance without touching shares, repayment brings it back
plus the fee, so the fee is what raises the price per share.

All amounts are integer cents and shares are integers. Every division floors,
so rounding dust always stays in the pool instead of leaking to whoever is
depositing or withdrawing.
"""

from decimal import Decimal
from typing import Tuple
from invoicefin_gateway.domain.models import Pool
from invoicefin_gateway.domain.exceptions import InsufficientFundsError, InvalidInputError

EMPTY_POOL_PRICE = Decimal("1")


def _require_positive(name: str, value: int) -> None:
    if isinstance(value, bool) or not isinstance(value, int) or value <= 0:
        raise InvalidInputError(f"{name} must be a positive integer, got {value!r}", **{name: value})


def price_per_share(pool: Pool) -> Decimal:
    """balance / total_shares, or 1 for an empty pool"""
    if pool.total_shares == 0:
        return EMPTY_POOL_PRICE
    return Decimal(pool.balance_cents) / Decimal(pool.total_shares)


def redeemable_value(pool: Pool, shares: int) -> int:
    if pool.total_shares == 0:
        return 0
    return shares * pool.balance_cents // pool.total_shares


def shares_for_deposit(pool: Pool, amount_cents: int) -> int:
    """Shares a deposit would mint; 1:1 while the pool is empty"""
    if pool.total_shares == 0 or pool.balance_cents == 0:
        return amount_cents
    return amount_cents * pool.total_shares // pool.balance_cents


def deposit(pool: Pool, amount_cents: int) -> int:
    """
    Mint shares for a deposit and return how many.

    Raises:
        InvalidInputError: amount not positive, or too small to mint one share
    """
    _require_positive("amount_cents", amount_cents)

    minted = shares_for_deposit(pool, amount_cents)
    if minted == 0:
        raise InvalidInputError(
            f"deposit of {amount_cents} is too small to mint a share at price {price_per_share(pool)}",
            amount_cents=amount_cents,
            price_per_share=str(price_per_share(pool)),
        )

    pool.total_shares += minted
    pool.balance_cents += amount_cents
    return minted


def withdraw(pool: Pool, shares: int, held_shares: int) -> Tuple[int, int]:
    """
    Burn shares and return (amount_out_cents, shares_burned).

    Raises:
        InvalidInputError: shares not positive, more than held, or worth nothing
        InsufficientFundsError: payout exceeds balance, or the last shares would
            leave while financed capital is still out
    """
    _require_positive("shares", shares)
    if shares > held_shares:
        raise InvalidInputError(
            f"cannot withdraw {shares} shares, position holds {held_shares}",
            shares=shares,
            held_shares=held_shares,
        )
    if shares > pool.total_shares:
        raise InvalidInputError(
            f"cannot withdraw {shares} shares, pool has {pool.total_shares}",
            shares=shares,
            total_shares=pool.total_shares,
        )
    if shares == pool.total_shares and pool.deployed_cents > 0:
        # Would leave returning capital with no owners
        raise InsufficientFundsError(
            f"final {shares} shares cannot be redeemed while {pool.deployed_cents} is deployed",
            shares=shares,
            deployed_cents=pool.deployed_cents,
        )

    amount_out = redeemable_value(pool, shares)
    if amount_out > pool.balance_cents:
        raise InsufficientFundsError(
            f"withdrawal of {amount_out} exceeds pool balance {pool.balance_cents}",
            amount_cents=amount_out,
            balance_cents=pool.balance_cents,
        )
    if amount_out == 0:
        raise InvalidInputError(
            f"{shares} shares currently redeem for nothing",
            shares=shares,
            balance_cents=pool.balance_cents,
        )

    pool.total_shares -= shares
    pool.balance_cents -= amount_out
    return amount_out, shares


def transfer_for_financing(pool: Pool, amount_cents: int) -> None:
    """Deploy capital to a financed invoice; shares are unchanged"""
    _require_positive("amount_cents", amount_cents)
    if amount_cents > pool.balance_cents:
        raise InsufficientFundsError(
            f"financing of {amount_cents} exceeds pool balance {pool.balance_cents}",
            amount_cents=amount_cents,
            balance_cents=pool.balance_cents,
        )
    pool.balance_cents -= amount_cents
    pool.deployed_cents += amount_cents


def receive_repayment(pool: Pool, amount_cents: int, principal_cents: int) -> None:
    """Return deployed principal plus fee to the balance; the surplus is yield"""
    _require_positive("amount_cents", amount_cents)
    pool.balance_cents += amount_cents
    pool.deployed_cents = max(0, pool.deployed_cents - principal_cents)


def write_off(pool: Pool, principal_cents: int) -> None:
    """Drop defaulted principal from deployed capital; shareholders absorb the loss"""
    pool.deployed_cents = max(0, pool.deployed_cents - principal_cents)
