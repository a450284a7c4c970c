"""Credit and wallet ledger.

Every balance change is a signed ``LedgerPosting`` carrying the balance
before and after. Balances are updated with a conditional UPDATE keyed on
the balance that was read, so a concurrent writer makes the posting fail
instead of silently losing an update.

Functions here flush but never commit: the caller owns the transaction and
rolls it back when a posting raises ``LedgerError``.
"""

import logging
from datetime import datetime, timezone
from typing import Optional

from sqlalchemy import select, update
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from matchindeed.domain.enums import LedgerAccount, LedgerReason
from matchindeed.domain.models import CreditAccount, LedgerPosting, Wallet
from matchindeed.services.errors import LedgerError

logger = logging.getLogger(__name__)


async def open_account(
    db: AsyncSession,
    user_id: str,
    credits: int = 0,
    wallet_cents: int = 0,
) -> None:
    """Create the credit account and wallet for a user if they do not exist yet."""
    existing = await db.execute(select(CreditAccount.user_id).where(CreditAccount.user_id == user_id))
    if existing.scalar_one_or_none() is None:
        db.add(CreditAccount(user_id=user_id, balance=credits))

    existing = await db.execute(select(Wallet.user_id).where(Wallet.user_id == user_id))
    if existing.scalar_one_or_none() is None:
        db.add(Wallet(user_id=user_id, balance_cents=wallet_cents))

    await db.flush()


async def credit_balance(db: AsyncSession, user_id: str) -> Optional[int]:
    result = await db.execute(select(CreditAccount.balance).where(CreditAccount.user_id == user_id))
    return result.scalar_one_or_none()


async def wallet_balance(db: AsyncSession, user_id: str) -> Optional[int]:
    result = await db.execute(select(Wallet.balance_cents).where(Wallet.user_id == user_id))
    return result.scalar_one_or_none()


async def balances(db: AsyncSession, user_id: str) -> dict:
    return {
        "credits": await credit_balance(db, user_id),
        "wallet_cents": await wallet_balance(db, user_id),
    }


async def _post(
    db: AsyncSession,
    account: LedgerAccount,
    user_id: str,
    delta: int,
    reason: LedgerReason,
    meeting_id: Optional[str],
    description: Optional[str],
) -> LedgerPosting:
    if account == LedgerAccount.CREDITS:
        model, column = CreditAccount, CreditAccount.balance
        before = await credit_balance(db, user_id)
    else:
        model, column = Wallet, Wallet.balance_cents
        before = await wallet_balance(db, user_id)

    if before is None:
        raise LedgerError(f"No {account.value} account for user {user_id}", meeting_id)

    after = before + delta
    if account == LedgerAccount.CREDITS and after < 0:
        raise LedgerError(
            f"Credit balance for user {user_id} would go negative ({before} {delta:+d})",
            meeting_id,
        )

    result = await db.execute(
        update(model)
        .where(model.user_id == user_id, column == before)
        .values({column.key: after, "updated_at": datetime.now(timezone.utc)})
        .execution_options(synchronize_session=False)
    )
    if result.rowcount != 1:
        raise LedgerError(
            f"{account.value} balance for user {user_id} changed concurrently", meeting_id
        )

    posting = LedgerPosting(
        user_id=user_id,
        meeting_id=meeting_id,
        account=account.value,
        amount=delta,
        balance_before=before,
        balance_after=after,
        reason=reason.value,
        description=description,
    )
    db.add(posting)
    try:
        await db.flush()
    except IntegrityError as exc:
        raise LedgerError(
            f"{reason.value} already posted for user {user_id} on meeting {meeting_id}",
            meeting_id,
        ) from exc

    logger.info(
        "Ledger posting: user=%s account=%s amount=%+d before=%d after=%d reason=%s meeting=%s",
        user_id, account.value, delta, before, after, reason.value, meeting_id,
    )
    return posting


async def post_credit(
    db: AsyncSession,
    user_id: str,
    delta: int,
    reason: LedgerReason,
    meeting_id: Optional[str] = None,
    description: Optional[str] = None,
) -> LedgerPosting:
    """Apply a signed credit change. Raises LedgerError; credits never go negative."""
    return await _post(db, LedgerAccount.CREDITS, user_id, delta, reason, meeting_id, description)


async def post_wallet_adjustment(
    db: AsyncSession,
    user_id: str,
    delta_cents: int,
    reason: LedgerReason,
    meeting_id: Optional[str] = None,
    description: Optional[str] = None,
) -> LedgerPosting:
    """Apply a signed wallet change in cents. Wallets may go negative when fees are owed."""
    return await _post(db, LedgerAccount.WALLET, user_id, delta_cents, reason, meeting_id, description)


async def postings_for_meeting(db: AsyncSession, meeting_id: str) -> list[LedgerPosting]:
    result = await db.execute(
        select(LedgerPosting)
        .where(LedgerPosting.meeting_id == meeting_id)
        .order_by(LedgerPosting.created_at, LedgerPosting.id)
    )
    return list(result.scalars().all())


def serialize_posting(posting: LedgerPosting) -> dict:
    return {
        "id": posting.id,
        "user_id": posting.user_id,
        "meeting_id": posting.meeting_id,
        "account": posting.account,
        "amount": posting.amount,
        "balance_before": posting.balance_before,
        "balance_after": posting.balance_after,
        "reason": posting.reason,
        "description": posting.description,
        "created_at": posting.created_at.isoformat() if posting.created_at else None,
    }
