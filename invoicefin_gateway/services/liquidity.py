"""Liquidity provider deposits, withdrawals and pool statistics"""

import uuid
from dataclasses import dataclass
from datetime import datetime
from decimal import Decimal, ROUND_HALF_UP
from typing import Callable, List, Optional
from sqlalchemy.orm import Session

from invoicefin_gateway.config import settings
from invoicefin_gateway.domain import pool as pool_accounting
from invoicefin_gateway.domain.apy import estimate_apy
from invoicefin_gateway.domain.exceptions import DomainException, NotFoundError
from invoicefin_gateway.domain.models import LiquidityPosition, Pool, PoolStats, PositionStatus, TransferKind
from invoicefin_gateway.infrastructure.database.repositories import PoolRepository, TransferRepository
from invoicefin_gateway.infrastructure.observability.logging import log_financing_event
from invoicefin_gateway.infrastructure.observability.metrics import observe_pool, record_operation
from invoicefin_gateway.services.unit_of_work import PoolLocks, pool_locks, unit_of_work
from invoicefin_gateway.utils.date_utils import utcnow


@dataclass(frozen=True)
class DepositResult:
    position: LiquidityPosition
    shares_minted: int
    pool: Pool


@dataclass(frozen=True)
class WithdrawalResult:
    position: LiquidityPosition
    amount_cents: int
    shares_burned: int
    pool: Pool


@dataclass(frozen=True)
class PositionValue:
    position: LiquidityPosition
    redeemable_cents: int


class LiquidityService:
    """Share-based deposits and withdrawals, serialized with financing by the pool lock"""

    def __init__(
        self,
        db: Session,
        locks: Optional[PoolLocks] = None,
        pool_name: Optional[str] = None,
        clock: Callable[[], datetime] = utcnow,
    ):
        self.db = db
        self.locks = locks or pool_locks
        self.pool_name = pool_name or settings.pool_name
        self.clock = clock
        self.pools = PoolRepository(db)
        self.transfers = TransferRepository(db)

    def deposit(self, wallet_address: str, amount_cents: int, external_tx_ref: Optional[str] = None) -> DepositResult:
        """Mint shares for the deposit onto the wallet's active position (opening one if needed)"""
        with self.locks.for_pool(self.pool_name):
            try:
                with unit_of_work(self.db):
                    pool = self.pools.get_or_create(self.pool_name, for_update=True)
                    minted = pool_accounting.deposit(pool, amount_cents)

                    position = self.pools.get_active_position(pool.id, wallet_address)
                    if position is None:
                        position = self.pools.add_position(
                            LiquidityPosition(id=uuid.uuid4(), pool_id=pool.id, wallet_address=wallet_address)
                        )
                    position.shares += minted

                    self.pools.save(pool)
                    self.pools.save_position(position)
                    self.transfers.record(
                        pool_id=pool.id,
                        kind=TransferKind.DEPOSIT,
                        amount_cents=amount_cents,
                        wallet_address=wallet_address,
                        external_tx_ref=external_tx_ref,
                    )
            except DomainException as e:
                record_operation("deposit", type(e).__name__)
                raise

        record_operation("deposit", "ok")
        observe_pool(pool)
        log_financing_event("deposit", "ok", amount_cents=amount_cents, shares=minted, wallet_address=wallet_address)
        return DepositResult(position=position, shares_minted=minted, pool=pool)

    def withdraw(
        self,
        wallet_address: str,
        shares: Optional[int] = None,
        external_tx_ref: Optional[str] = None,
    ) -> WithdrawalResult:
        """
        Burn shares from the wallet's active position and pay out their value.

        Omitting shares redeems the whole position. A position whose shares
        reach zero is marked withdrawn.
        """
        with self.locks.for_pool(self.pool_name):
            try:
                with unit_of_work(self.db):
                    pool = self.pools.get_or_create(self.pool_name, for_update=True)
                    position = self.pools.get_active_position(pool.id, wallet_address)
                    if position is None:
                        raise NotFoundError(
                            f"No active liquidity position for {wallet_address}",
                            wallet_address=wallet_address,
                        )

                    requested = position.shares if shares is None else shares
                    amount_out, burned = pool_accounting.withdraw(pool, requested, position.shares)

                    position.shares -= burned
                    if position.shares == 0:
                        position.status = PositionStatus.WITHDRAWN
                        position.withdrawn_at = self.clock()

                    self.pools.save(pool)
                    self.pools.save_position(position)
                    self.transfers.record(
                        pool_id=pool.id,
                        kind=TransferKind.WITHDRAW,
                        amount_cents=amount_out,
                        wallet_address=wallet_address,
                        external_tx_ref=external_tx_ref,
                    )
            except DomainException as e:
                record_operation("withdraw", type(e).__name__)
                raise

        record_operation("withdraw", "ok")
        observe_pool(pool)
        log_financing_event("withdraw", "ok", amount_cents=amount_out, shares=burned, wallet_address=wallet_address)
        return WithdrawalResult(position=position, amount_cents=amount_out, shares_burned=burned, pool=pool)

    def get_positions(self, wallet_address: str) -> List[PositionValue]:
        pool = self.pools.get(self.pool_name)
        positions = self.pools.get_positions_by_wallet(wallet_address)
        return [
            PositionValue(
                position=p,
                redeemable_cents=pool_accounting.redeemable_value(pool, p.shares) if pool else 0,
            )
            for p in positions
        ]

    def pool_stats(self) -> PoolStats:
        pool = self.pools.get(self.pool_name) or Pool(id=uuid.uuid4(), name=self.pool_name)
        total_assets = pool.balance_cents + pool.deployed_cents
        utilization = (
            (Decimal(pool.deployed_cents) / Decimal(total_assets)).quantize(Decimal("0.0001"), rounding=ROUND_HALF_UP)
            if total_assets
            else Decimal("0")
        )
        return PoolStats(
            total_shares=pool.total_shares,
            balance_cents=pool.balance_cents,
            deployed_cents=pool.deployed_cents,
            price_per_share=pool_accounting.price_per_share(pool),
            utilization_rate=utilization,
            apy=estimate_apy(total_assets, pool.deployed_cents),
        )
