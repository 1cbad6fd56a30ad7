"""Investor wallet routes."""

from fastapi import APIRouter, Depends
from sqlalchemy.ext.asyncio import AsyncSession

from sahem_invest.app.routes.auth import require_permission
from sahem_invest.domain.models import User
from sahem_invest.domain.permissions import Permission
from sahem_invest.domain.schemas import TransactionResponse, WalletBalanceResponse, WalletRequest
from sahem_invest.infra.database import get_db
from sahem_invest.services import wallet_service

router = APIRouter(prefix="/api/wallet", tags=["wallet"])

wallet_user = require_permission(Permission.USE_WALLET)


@router.get("/balance", response_model=WalletBalanceResponse)
async def get_balance(user: User = Depends(wallet_user)):
    return WalletBalanceResponse(
        balance=user.wallet_balance,
        total_invested=user.total_invested,
        total_returns=user.total_returns,
    )


@router.post("/deposit", response_model=TransactionResponse, status_code=201)
async def deposit(
    data: WalletRequest,
    user: User = Depends(wallet_user),
    db: AsyncSession = Depends(get_db),
):
    transaction = await wallet_service.request_deposit(db, user, data.amount, data.method)
    return TransactionResponse.model_validate(transaction)


@router.post("/withdraw", response_model=TransactionResponse, status_code=201)
async def withdraw(
    data: WalletRequest,
    user: User = Depends(wallet_user),
    db: AsyncSession = Depends(get_db),
):
    transaction = await wallet_service.request_withdrawal(db, user, data.amount, data.method)
    return TransactionResponse.model_validate(transaction)


@router.get("/transactions", response_model=list[TransactionResponse])
async def list_transactions(
    user: User = Depends(wallet_user),
    db: AsyncSession = Depends(get_db),
):
    transactions = await wallet_service.list_transactions(db, user)
    return [TransactionResponse.model_validate(t) for t in transactions]
