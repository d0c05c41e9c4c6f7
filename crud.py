"""Users, accounts and categories: everything around the ledger."""

from decimal import Decimal
from typing import List

from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from database import atomic
from errors import ConflictError, NotFoundError, Unauthorized, ValidationFailed
from logging_config import get_logger
from models import Account, Category, EntryType, Transaction, User
from security import hash_password, verify_password

logger = get_logger(__name__)

DEFAULT_ACCOUNT_NAME = "Main Account"
DEFAULT_CATEGORIES = [
    ("Salary", EntryType.income),
    ("Food", EntryType.expense),
    ("Transport", EntryType.expense),
    ("Shopping", EntryType.expense),
    ("Bills", EntryType.expense),
    ("Entertainment", EntryType.expense),
    ("Health", EntryType.expense),
]


# ===== USERS =====
def register_user(db: Session, email: str, password: str, name: str = None) -> User:
    """Create the user together with its account and default categories."""
    if db.query(User).filter(User.email == email).first():
        raise ConflictError("User with this email already exists")

    try:
        with atomic(db):
            user = User(email=email, password_hash=hash_password(password), name=name)
            db.add(user)
            db.flush()

            db.add(Account(user_id=user.id, name=DEFAULT_ACCOUNT_NAME, balance=Decimal("0")))
            db.add_all([Category(user_id=user.id, name=n, type=t) for n, t in DEFAULT_CATEGORIES])
    except IntegrityError:
        # lost a race with a concurrent registration of the same email
        raise ConflictError("User with this email already exists")

    db.refresh(user)
    logger.info("user_registered", user_id=user.id)
    return user


def authenticate(db: Session, email: str, password: str) -> User:
    user = db.query(User).filter(User.email == email).first()
    if (not user) or (not verify_password(password, user.password_hash)):
        raise Unauthorized("Invalid credentials")
    return user


# ===== ACCOUNT =====
def get_account(db: Session, user_id: int) -> Account:
    account = db.query(Account).filter(Account.user_id == user_id).first()
    if not account:
        raise NotFoundError("Account not found")
    return account


def create_account(db: Session, user_id: int, name: str, balance: Decimal) -> Account:
    if db.query(Account).filter(Account.user_id == user_id).first():
        raise ConflictError("User already has an account")

    account = Account(user_id=user_id, name=name, balance=balance)
    try:
        with atomic(db):
            db.add(account)
    except IntegrityError:
        raise ConflictError("User already has an account")
    db.refresh(account)
    return account


def rename_account(db: Session, user_id: int, name: str) -> None:
    with atomic(db):
        updated = (
            db.query(Account)
            .filter(Account.user_id == user_id)
            .update({Account.name: name}, synchronize_session=False)
        )
        if updated == 0:
            raise NotFoundError("Account not found")


# ===== CATEGORIES =====
def list_categories(db: Session, user_id: int) -> List[Category]:
    return db.query(Category).filter(Category.user_id == user_id).order_by(Category.id).all()


def _owned_category(db: Session, user_id: int, category_id: int) -> Category:
    category = db.query(Category).filter(Category.id == category_id, Category.user_id == user_id).first()
    if not category:
        raise NotFoundError("Category not found")
    return category


def create_category(db: Session, user_id: int, name: str, type: EntryType) -> Category:
    category = Category(user_id=user_id, name=name, type=type)
    with atomic(db):
        db.add(category)
    db.refresh(category)
    return category


def update_category(db: Session, user_id: int, category_id: int, name: str, type: EntryType) -> Category:
    with atomic(db):
        category = _owned_category(db, user_id, category_id)
        if EntryType(type) != category.type:
            raise ValidationFailed("Category type cannot be changed")
        category.name = name
    db.refresh(category)
    return category


def delete_category(db: Session, user_id: int, category_id: int) -> None:
    with atomic(db):
        category = _owned_category(db, user_id, category_id)
        in_use = db.query(Transaction.id).filter(Transaction.category_id == category.id).first()
        if in_use:
            raise ConflictError("Category has transactions")
        db.delete(category)
