"""Account registration endpoints."""

from typing import Optional

from fastapi import APIRouter, Depends, Request
from pydantic import BaseModel, Field

from tokenswallet.api.deps import build_services, require_admin_token
from tokenswallet.ledger.database import get_db
from tokenswallet.ledger.models import User
from tokenswallet.wallets import parse_chain

router = APIRouter(prefix="/accounts")


class RegisterRequest(BaseModel):
    """Email/password registration."""

    email: str = Field(..., min_length=3, max_length=255)
    password: str = Field(..., min_length=8)
    display_name: Optional[str] = None
    chain: str = "ethereum"


class GoogleLoginRequest(BaseModel):
    """Verified Google identity forwarded by the auth proxy."""

    google_id: str = Field(..., min_length=1)
    email: str = Field(..., min_length=3, max_length=255)
    display_name: Optional[str] = None
    chain: str = "ethereum"


class AccountResponse(BaseModel):
    id: str
    email: str
    display_name: Optional[str] = None
    ethereum_address: Optional[str] = None
    substrate_address: Optional[str] = None


def _account_response(user: User) -> AccountResponse:
    return AccountResponse(
        id=user.id,
        email=user.email,
        display_name=user.display_name,
        ethereum_address=user.ethereum_address,
        substrate_address=user.substrate_address,
    )


@router.post("", response_model=AccountResponse, status_code=201)
async def register(body: RegisterRequest, request: Request) -> AccountResponse:
    """Create an account and provision its wallet."""
    chain = parse_chain(body.chain)
    async with get_db() as session:
        services = build_services(request, session)
        user = await services.accounts.register(
            body.email,
            body.password,
            chain=chain,
            display_name=body.display_name,
        )
        return _account_response(user)


@router.post("/google", response_model=AccountResponse)
async def google_login(
    body: GoogleLoginRequest,
    request: Request,
    _: bool = Depends(require_admin_token),
) -> AccountResponse:
    """Find or create the account for a Google login and make sure it has a wallet."""
    chain = parse_chain(body.chain)
    async with get_db() as session:
        services = build_services(request, session)
        user = await services.accounts.find_or_create_from_google(
            body.google_id,
            body.email,
            display_name=body.display_name,
            chain=chain,
        )
        return _account_response(user)
