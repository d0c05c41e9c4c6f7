"""
Balance bookkeeping for transactions.

An account's ``balance`` is a running total: it must always equal the sum of
the signed effects of the account's transactions (plus its opening balance).
Every create, update and delete below writes the transaction row and the
balance change in one database transaction.

The balance is never written back as a value computed in Python. Each
mutation sends ``balance = balance + delta`` to the database, so two requests
against the same account add up even on stores where ``SELECT ... FOR UPDATE``
does not lock (SQLite). Updates and deletes also match the transaction row on
the values they read, and report a conflict when another request changed or
removed it first, so its old effect is never reverted twice.

Lookups are always scoped by the calling user, so a transaction or category
that belongs to somebody else is reported exactly like one that does not exist.
"""

import math
from decimal import Decimal
from typing import Iterable, Optional

from sqlalchemy import func
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from database import atomic
from errors import ConflictError, NotFoundError, mark_logged
from logging_config import get_logger
from models import Account, Category, EntryType, Transaction
from schemas import TransactionIn

logger = get_logger(__name__)

ACCOUNT_NOT_FOUND = "Account not found"
CATEGORY_NOT_FOUND = "Category not found"
TRANSACTION_NOT_FOUND = "Transaction not found"
TRANSACTION_CHANGED = "Transaction was changed by another request, please retry"


def effect(entry_type: EntryType, amount: Decimal) -> Decimal:
    """Signed contribution of a transaction to its account balance."""
    amount = Decimal(amount)
    return amount if EntryType(entry_type) == EntryType.income else -amount


def replay_balance(transactions: Iterable, opening: Decimal = Decimal("0")) -> Decimal:
    total = Decimal(opening)
    for t in transactions:
        total += effect(t.type, t.amount)
    return total


# ===== SCOPED LOOKUPS =====
def _lock_account(db: Session, user_id: int) -> Optional[Account]:
    return (
        db.query(Account)
        .filter(Account.user_id == user_id)
        .with_for_update()
        .first()
    )


def _owned_category(db: Session, user_id: int, category_id: int) -> Optional[Category]:
    return db.query(Category).filter(Category.id == category_id, Category.user_id == user_id).first()


def _owned_transaction(db: Session, account: Account, transaction_id: int) -> Optional[Transaction]:
    return (
        db.query(Transaction)
        .filter(Transaction.id == transaction_id, Transaction.account_id == account.id)
        .first()
    )


def _unchanged(db: Session, txn: Transaction):
    """Query matching ``txn`` only while it still holds the values we read."""
    return db.query(Transaction).filter(
        Transaction.id == txn.id,
        Transaction.amount == txn.amount,
        Transaction.type == txn.type,
    )


def _apply_delta(db: Session, account: Account, delta: Decimal, operation: str) -> None:
    logger.debug("balance_changed", operation=operation, account_id=account.id, delta=str(delta))
    db.query(Account).filter(Account.id == account.id).update(
        {Account.balance: Account.balance + delta}, synchronize_session=False
    )


def _log_store_failure(operation: str, user_id: int, exc: Exception, **data) -> None:
    logger.error(operation, user_id=user_id, error=str(exc), exc_info=exc, **data)
    mark_logged(exc)


# ===== MUTATIONS =====
def create_transaction(db: Session, user_id: int, payload: TransactionIn) -> Transaction:
    try:
        with atomic(db):
            account = _lock_account(db, user_id)
            if account is None:
                raise NotFoundError(ACCOUNT_NOT_FOUND)

            if _owned_category(db, user_id, payload.category_id) is None:
                raise NotFoundError(CATEGORY_NOT_FOUND)

            txn = Transaction(
                account_id=account.id,
                category_id=payload.category_id,
                amount=payload.amount,
                description=payload.description,
                date=payload.date,
                type=payload.type,
            )
            db.add(txn)

            _apply_delta(db, account, effect(payload.type, payload.amount), "create")
    except SQLAlchemyError as exc:
        _log_store_failure(
            "create_transaction_failed", user_id, exc,
            amount=str(payload.amount), type=payload.type.value,
            category_id=payload.category_id, date=payload.date.isoformat(),
        )
        raise

    db.refresh(txn)
    return txn


def update_transaction(db: Session, user_id: int, transaction_id: int, payload: TransactionIn) -> Transaction:
    try:
        with atomic(db):
            account = _lock_account(db, user_id)
            txn = _owned_transaction(db, account, transaction_id) if account is not None else None
            if txn is None:
                raise NotFoundError(TRANSACTION_NOT_FOUND)

            if _owned_category(db, user_id, payload.category_id) is None:
                raise NotFoundError(CATEGORY_NOT_FOUND)

            # revert the old effect, then apply the new one
            delta = effect(payload.type, payload.amount) - effect(txn.type, txn.amount)

            matched = _unchanged(db, txn).update(
                {
                    Transaction.amount: payload.amount,
                    Transaction.description: payload.description,
                    Transaction.date: payload.date,
                    Transaction.type: payload.type,
                    Transaction.category_id: payload.category_id,
                },
                synchronize_session=False,
            )
            if matched == 0:
                raise ConflictError(TRANSACTION_CHANGED)

            _apply_delta(db, account, delta, "update")
    except SQLAlchemyError as exc:
        _log_store_failure(
            "update_transaction_failed", user_id, exc,
            transaction_id=transaction_id, amount=str(payload.amount), type=payload.type.value,
            category_id=payload.category_id, date=payload.date.isoformat(),
        )
        raise

    db.refresh(txn)
    return txn


def delete_transaction(db: Session, user_id: int, transaction_id: int) -> None:
    try:
        with atomic(db):
            account = _lock_account(db, user_id)
            txn = _owned_transaction(db, account, transaction_id) if account is not None else None
            if txn is None:
                raise NotFoundError(TRANSACTION_NOT_FOUND)

            delta = -effect(txn.type, txn.amount)
            if _unchanged(db, txn).delete(synchronize_session=False) == 0:
                raise ConflictError(TRANSACTION_CHANGED)

            _apply_delta(db, account, delta, "delete")
    except SQLAlchemyError as exc:
        _log_store_failure("delete_transaction_failed", user_id, exc, transaction_id=transaction_id)
        raise


# ===== READS =====
def list_transactions(db: Session, user_id: int, page: int = 1, limit: int = 10) -> dict:
    owned = db.query(Transaction).join(Account).filter(Account.user_id == user_id)

    total = owned.with_entities(func.count(Transaction.id)).scalar() or 0
    items = (
        owned.order_by(Transaction.date.desc(), Transaction.id.desc())
        .offset((page - 1) * limit)
        .limit(limit)
        .all()
    )
    return {
        "transactions": items,
        "total_pages": math.ceil(total / limit),
        "current_page": page,
    }


def transactions_for_export(db: Session, user_id: int, year: int, month: Optional[int] = None):
    query = (
        db.query(Transaction)
        .join(Account)
        .filter(Account.user_id == user_id, func.extract("year", Transaction.date) == year)
    )
    if month:
        query = query.filter(func.extract("month", Transaction.date) == month)
    return query.order_by(Transaction.date.asc(), Transaction.id.asc()).all()
