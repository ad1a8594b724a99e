"""Request dependencies: caller identity and per-session services."""

from dataclasses import dataclass
from typing import Optional

from fastapi import Header, HTTPException, Request
from sqlalchemy.ext.asyncio import AsyncSession

from tokenswallet.config import get_settings
from tokenswallet.ledger.repository import AccountRepository, ReceiptRepository
from tokenswallet.services import AccountService, KeyCustodian, TransferCoordinator


@dataclass
class Identity:
    """Caller identity as verified by the upstream auth proxy."""

    user_id: str
    email: Optional[str] = None


async def current_identity(
    x_user_id: str = Header(None),
    x_user_email: str = Header(None),
) -> Identity:
    """Read the authenticated identity headers.

    Authentication itself happens in front of this service; the proxy strips
    any client-supplied copies of these headers.
    """
    if not x_user_id:
        raise HTTPException(status_code=401, detail="Missing authenticated identity")
    return Identity(user_id=x_user_id, email=x_user_email)


async def require_admin_token(x_admin_token: str = Header(None)) -> bool:
    """Verify admin token from header.

    If ADMIN_TOKEN is not set, allows access (dev mode).
    """
    settings = get_settings()

    if not settings.admin_token:
        if settings.is_production:
            raise HTTPException(status_code=403, detail="Admin token not configured")
        return True

    if x_admin_token != settings.admin_token:
        raise HTTPException(status_code=401, detail="Invalid admin token")

    return True


@dataclass
class Services:
    accounts: AccountService
    custodian: KeyCustodian
    transfers: TransferCoordinator


def build_services(request: Request, session: AsyncSession) -> Services:
    """Wire services around one database session and the app's shared handles."""
    store = request.app.state.secret_store
    backends = request.app.state.backends

    account_repo = AccountRepository(session)
    custodian = KeyCustodian(store, backends, account_repo)
    return Services(
        accounts=AccountService(account_repo, custodian),
        custodian=custodian,
        transfers=TransferCoordinator(
            custodian, backends, ReceiptRepository(session), account_repo
        ),
    )
