"""Liquidity pool endpoints: pool stats, deposits, withdrawals and positions"""

from fastapi import APIRouter, BackgroundTasks, Depends, Query

from invoicefin_gateway.api.dependencies import get_ledger_client, get_liquidity_service
from invoicefin_gateway.api.v1.schemas import (
    WALLET_PATTERN,
    DepositRequest,
    DepositResponse,
    PoolStatsResponse,
    PositionItem,
    PositionsResponse,
    WithdrawRequest,
    WithdrawResponse,
)
from invoicefin_gateway.infrastructure.clients.ledger import LedgerClient
from invoicefin_gateway.services.liquidity import LiquidityService

router = APIRouter()


@router.get("/pool", response_model=PoolStatsResponse)
def get_pool_stats(service: LiquidityService = Depends(get_liquidity_service)):
    """Current share supply, idle balance, deployed capital, price per share and estimated APY"""
    stats = service.pool_stats()
    return PoolStatsResponse(
        total_shares=stats.total_shares,
        balance_cents=stats.balance_cents,
        deployed_cents=stats.deployed_cents,
        price_per_share=stats.price_per_share,
        utilization_rate=stats.utilization_rate,
        apy=stats.apy,
    )


@router.post("/liquidity/deposit", response_model=DepositResponse, status_code=201)
def deposit(
    request_body: DepositRequest,
    background_tasks: BackgroundTasks,
    service: LiquidityService = Depends(get_liquidity_service),
    ledger_client: LedgerClient = Depends(get_ledger_client),
):
    wallet_address = request_body.wallet_address.lower()
    result = service.deposit(wallet_address, request_body.amount_cents, request_body.external_tx_ref)

    background_tasks.add_task(
        ledger_client.send_event,
        "LIQUIDITY_DEPOSITED",
        {
            "wallet_address": wallet_address,
            "amount_cents": request_body.amount_cents,
            "shares": result.shares_minted,
            "tx_ref": request_body.external_tx_ref,
        },
    )

    return DepositResponse(
        position_id=result.position.id,
        shares_minted=result.shares_minted,
        position_shares=result.position.shares,
        pool_total_shares=result.pool.total_shares,
        pool_balance_cents=result.pool.balance_cents,
    )


@router.post("/liquidity/withdraw", response_model=WithdrawResponse)
def withdraw(
    request_body: WithdrawRequest,
    background_tasks: BackgroundTasks,
    service: LiquidityService = Depends(get_liquidity_service),
    ledger_client: LedgerClient = Depends(get_ledger_client),
):
    """Burn shares (all of them when none are given) and pay out their current value"""
    wallet_address = request_body.wallet_address.lower()
    result = service.withdraw(wallet_address, request_body.shares, request_body.external_tx_ref)

    background_tasks.add_task(
        ledger_client.send_event,
        "LIQUIDITY_WITHDRAWN",
        {
            "wallet_address": wallet_address,
            "amount_cents": result.amount_cents,
            "shares": result.shares_burned,
            "tx_ref": request_body.external_tx_ref,
        },
    )

    return WithdrawResponse(
        position_id=result.position.id,
        amount_cents=result.amount_cents,
        shares_burned=result.shares_burned,
        position_status=result.position.status,
        remaining_shares=result.position.shares,
    )


@router.get("/liquidity/positions", response_model=PositionsResponse)
def get_positions(
    wallet_address: str = Query(..., pattern=WALLET_PATTERN),
    service: LiquidityService = Depends(get_liquidity_service),
):
    wallet_address = wallet_address.lower()
    return PositionsResponse(
        wallet_address=wallet_address,
        positions=[
            PositionItem(
                position_id=value.position.id,
                shares=value.position.shares,
                status=value.position.status,
                redeemable_cents=value.redeemable_cents,
                deposited_at=value.position.deposited_at,
                withdrawn_at=value.position.withdrawn_at,
            )
            for value in service.get_positions(wallet_address)
        ],
    )
