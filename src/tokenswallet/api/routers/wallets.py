"""Wallet endpoints: provisioning, balances, transfers and history."""

from datetime import datetime
from typing import Optional

from fastapi import APIRouter, Depends, Query, Request
from pydantic import BaseModel, Field

from tokenswallet.api.deps import Identity, build_services, current_identity, require_admin_token
from tokenswallet.errors import NoSecret, UserUnknown
from tokenswallet.ledger.database import get_db
from tokenswallet.ledger.models import TransactionReceipt
from tokenswallet.wallets import parse_chain

router = APIRouter(prefix="/wallets")


class WalletResponse(BaseModel):
    chain: str
    address: str


class BalanceResponse(BaseModel):
    chain: str
    address: str
    balance: str


class TransferRequest(BaseModel):
    """Transfer in human units, e.g. ``"0.25"``."""

    to: str = Field(..., min_length=1)
    amount: str = Field(..., min_length=1)
    asset_id: Optional[str] = None


class EmailTransferRequest(TransferRequest):
    email: str = Field(..., min_length=3)


class ReceiptResponse(BaseModel):
    id: str
    chain: str
    from_address: str
    to_address: str
    amount: str
    tx_hash: str
    block_hash: Optional[str] = None
    timestamp: Optional[datetime] = None


def _receipt_response(receipt: TransactionReceipt) -> ReceiptResponse:
    return ReceiptResponse(
        id=receipt.id,
        chain=receipt.chain,
        from_address=receipt.from_address,
        to_address=receipt.to_address,
        amount=receipt.amount,
        tx_hash=receipt.tx_hash,
        block_hash=receipt.block_hash,
        timestamp=receipt.timestamp,
    )


# Declared before the /{chain} routes so "transactions" is not read as a chain
@router.get("/transactions", response_model=list[ReceiptResponse])
async def list_transactions(
    request: Request,
    address: str = Query(..., min_length=1),
    limit: int = Query(100, ge=1, le=500),
    _: Identity = Depends(current_identity),
) -> list[ReceiptResponse]:
    """Transfers sent from or to an address, newest first."""
    async with get_db() as session:
        services = build_services(request, session)
        receipts = await services.transfers.list_transactions(address, limit=limit)
        return [_receipt_response(r) for r in receipts]


@router.post("/{chain}", response_model=WalletResponse)
async def provision_wallet(
    chain: str,
    request: Request,
    identity: Identity = Depends(current_identity),
) -> WalletResponse:
    """Create the caller's wallet on a chain, or return the existing one."""
    chain_enum = parse_chain(chain)
    async with get_db() as session:
        services = build_services(request, session)
        address = await services.custodian.provision(identity.user_id, chain_enum)
        return WalletResponse(chain=chain_enum.value, address=address)


@router.get("/{chain}", response_model=WalletResponse)
async def get_wallet(
    chain: str,
    request: Request,
    identity: Identity = Depends(current_identity),
) -> WalletResponse:
    """The caller's recorded wallet address."""
    chain_enum = parse_chain(chain)
    async with get_db() as session:
        services = build_services(request, session)
        user = await services.custodian.accounts.find_by_id(identity.user_id)
        if not user:
            raise UserUnknown(f"User {identity.user_id} not found")
        address = user.address_for(chain_enum)
        if not address:
            raise NoSecret(f"No {chain_enum.value} wallet for user {identity.user_id}")
        return WalletResponse(chain=chain_enum.value, address=address)


@router.get("/{chain}/balance", response_model=BalanceResponse)
async def get_own_balance(
    chain: str,
    request: Request,
    identity: Identity = Depends(current_identity),
) -> BalanceResponse:
    chain_enum = parse_chain(chain)
    async with get_db() as session:
        services = build_services(request, session)
        address, balance = await services.transfers.get_balance(identity.user_id, chain_enum)
        return BalanceResponse(chain=chain_enum.value, address=address, balance=balance)


@router.get("/{chain}/balance/{address}", response_model=BalanceResponse)
async def get_address_balance(
    chain: str,
    address: str,
    request: Request,
    _: Identity = Depends(current_identity),
) -> BalanceResponse:
    chain_enum = parse_chain(chain)
    async with get_db() as session:
        services = build_services(request, session)
        balance = await services.transfers.get_address_balance(address, chain_enum)
        return BalanceResponse(chain=chain_enum.value, address=address, balance=balance)


@router.post("/{chain}/transfer", response_model=ReceiptResponse)
async def transfer(
    chain: str,
    body: TransferRequest,
    request: Request,
    identity: Identity = Depends(current_identity),
) -> ReceiptResponse:
    """Send tokens from the caller's wallet."""
    chain_enum = parse_chain(chain)
    async with get_db() as session:
        services = build_services(request, session)
        receipt = await services.transfers.transfer(
            identity.user_id,
            body.to,
            body.amount,
            chain_enum,
            asset_id=body.asset_id,
        )
        return _receipt_response(receipt)


@router.post("/{chain}/transfer-by-email", response_model=ReceiptResponse)
async def transfer_by_email(
    chain: str,
    body: EmailTransferRequest,
    request: Request,
    _: bool = Depends(require_admin_token),
) -> ReceiptResponse:
    """Send tokens on behalf of the account registered under an email (internal)."""
    chain_enum = parse_chain(chain)
    async with get_db() as session:
        services = build_services(request, session)
        receipt = await services.transfers.transfer_from_email(
            body.email,
            body.to,
            body.amount,
            chain_enum,
            asset_id=body.asset_id,
        )
        return _receipt_response(receipt)
