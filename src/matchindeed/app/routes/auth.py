"""Authentication routes: signup, login, me."""

import logging
from datetime import datetime, timezone

from fastapi import APIRouter, Depends, HTTPException, Request, status
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from matchindeed.domain.enums import ADMIN_ROLES, AccountStatus
from matchindeed.domain.models import Account
from matchindeed.domain.schemas import (
    AccountCreate,
    AccountLogin,
    AccountResponse,
    TokenResponse,
)
from matchindeed.infra.database import get_db
from matchindeed.services.auth_service import (
    create_access_token,
    create_account,
    decode_token,
    get_account_by_email,
    verify_password,
)

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/auth", tags=["auth"])


async def get_current_account_dep(
    request: Request, db: AsyncSession = Depends(get_db)
) -> Account:
    """Dependency: extract current account from Bearer token."""
    auth_header = request.headers.get("Authorization", "")
    if not auth_header.startswith("Bearer "):
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Missing or invalid token",
        )
    token = auth_header.removeprefix("Bearer ")
    payload = decode_token(token)
    if not payload or "sub" not in payload:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Invalid or expired token",
        )
    result = await db.execute(select(Account).where(Account.id == payload["sub"]))
    account = result.scalar_one_or_none()
    if not account or account.account_status != AccountStatus.ACTIVE.value:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Account not found or inactive",
        )
    return account


def is_admin(account: Account) -> bool:
    return account.role in ADMIN_ROLES


async def require_admin(account: Account = Depends(get_current_account_dep)) -> Account:
    """Dependency: current account must hold an admin role."""
    if not is_admin(account):
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail="Admin access required",
        )
    return account


@router.post("/signup", response_model=TokenResponse)
async def signup(data: AccountCreate, db: AsyncSession = Depends(get_db)):
    existing = await get_account_by_email(db, data.email)
    if existing:
        raise HTTPException(status_code=400, detail="Email already registered")
    account = await create_account(db, data.email, data.password, data.display_name)
    logger.info("Account created: %s", account.id)
    token = create_access_token(account.id, account.role)
    return TokenResponse(access_token=token, account=AccountResponse.model_validate(account))


@router.post("/login", response_model=TokenResponse)
async def login(data: AccountLogin, db: AsyncSession = Depends(get_db)):
    account = await get_account_by_email(db, data.email)
    if not account or not verify_password(data.password, account.password_hash):
        raise HTTPException(status_code=401, detail="Invalid email or password")
    if account.account_status != AccountStatus.ACTIVE.value:
        raise HTTPException(status_code=403, detail="Account is not active")
    account.last_active_at = datetime.now(timezone.utc)
    await db.commit()
    token = create_access_token(account.id, account.role)
    return TokenResponse(access_token=token, account=AccountResponse.model_validate(account))


@router.get("/me", response_model=AccountResponse)
async def me(account: Account = Depends(get_current_account_dep)):
    return AccountResponse.model_validate(account)
