"""Wallet ledger: the only way wallet counters change.

Every change is a relative ``UPDATE ... SET field = field + delta`` so that
concurrent writers commute. Nothing here ever writes an absolute balance.

The ledger does not deduplicate. Replaying the same call applies the delta
twice; callers issue each delta exactly once per transaction step.
"""
import logging

from sqlalchemy import func, select, update
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from .errors import InsufficientFundsError, UnknownEntityError
from .models import LedgerEntry, MONOTONIC_FIELDS, User, WALLET_FIELDS

logger = logging.getLogger(__name__)


def apply_delta(db: Session, user_id: int, field: str, delta: int, kind: str, room_id: int | None = None) -> int:
    """Apply ``delta`` to ``user.field`` and commit. Returns the new value."""
    if field not in WALLET_FIELDS:
        raise ValueError(f"unknown wallet field {field!r}")
    delta = int(delta)
    if field in MONOTONIC_FIELDS and delta < 0:
        raise ValueError(f"{field} only accepts positive deltas")

    column = getattr(User, field)
    stmt = update(User).where(User.id == user_id).values({field: column + delta})
    if field == "coins" and delta < 0:
        # Guard in the same statement so a racing debit can't overdraw
        stmt = stmt.where(User.coins + delta >= 0)

    try:
        res = db.execute(stmt.execution_options(synchronize_session=False))
        if res.rowcount == 0:
            db.rollback()
            current = db.scalar(select(User.coins).where(User.id == user_id))
            if current is None:
                raise UnknownEntityError(f"user {user_id} not found")
            raise InsufficientFundsError(user_id, -delta, current)
        db.add(LedgerEntry(user_id=user_id, room_id=room_id, field=field, amount=delta, kind=kind))
        db.commit()
    except SQLAlchemyError:
        db.rollback()
        raise
    logger.debug("user %s %s %+d (%s)", user_id, field, delta, kind)

    return db.scalar(select(column).where(User.id == user_id))


def balances(db: Session, user_id: int) -> dict:
    # Column select, not db.get: timer callbacks write through other sessions
    row = db.execute(
        select(*(getattr(User, f) for f in WALLET_FIELDS)).where(User.id == user_id)
    ).one_or_none()
    if row is None:
        raise UnknownEntityError(f"user {user_id} not found")
    return {f: int(v or 0) for f, v in zip(WALLET_FIELDS, row)}


def summary(db: Session, user_id: int) -> dict:
    # Coin movements grouped by kind, e.g. {"gift_send": -3000, "lucky_bonus": 2000}
    rows = db.execute(
        select(LedgerEntry.kind, func.sum(LedgerEntry.amount))
        .where(LedgerEntry.user_id == user_id, LedgerEntry.field == "coins")
        .group_by(LedgerEntry.kind)
    ).all()
    by_kind = {kind: int(total or 0) for kind, total in rows}
    spent = -sum(v for v in by_kind.values() if v < 0)
    returned = sum(v for k, v in by_kind.items() if v > 0 and k != "recharge")
    return {
        "by_kind": by_kind,
        "total_spent": spent,
        "total_returned": returned,
        "net": returned - spent,
    }
