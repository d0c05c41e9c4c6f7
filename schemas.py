import datetime as dt
from decimal import Decimal
from typing import List, Optional

from pydantic import BaseModel, ConfigDict, EmailStr, Field
from pydantic.alias_generators import to_camel

from models import EntryType


class CamelModel(BaseModel):
    # wire format is camelCase (categoryId, totalPages, ...)
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True, from_attributes=True)


# ===== AUTH =====
class RegisterIn(CamelModel):
    email: EmailStr
    password: str = Field(min_length=1)
    name: Optional[str] = None


class LoginIn(CamelModel):
    email: str = Field(min_length=1)
    password: str = Field(min_length=1)


class TokenOut(CamelModel):
    token: str
    token_type: str = "bearer"


class UserOut(CamelModel):
    id: int
    email: str
    name: Optional[str] = None
    created_at: dt.datetime
    updated_at: dt.datetime


# ===== ACCOUNT =====
class AccountCreate(CamelModel):
    name: str = Field(min_length=1, max_length=100)
    balance: Decimal = Field(max_digits=12, decimal_places=2)


class AccountRename(CamelModel):
    name: str = Field(min_length=1, max_length=100)


class AccountOut(CamelModel):
    id: int
    user_id: int
    name: str
    balance: Decimal
    created_at: dt.datetime
    updated_at: dt.datetime


# ===== CATEGORIES =====
class CategoryIn(CamelModel):
    name: str = Field(min_length=1, max_length=100)
    type: EntryType


class CategoryOut(CamelModel):
    id: int
    user_id: int
    name: str
    type: EntryType


# ===== TRANSACTIONS =====
class TransactionIn(CamelModel):
    amount: Decimal = Field(gt=0, max_digits=12, decimal_places=2)
    description: Optional[str] = Field(default=None, max_length=255)
    date: dt.date
    category_id: int
    type: EntryType


class TransactionOut(CamelModel):
    id: int
    account_id: int
    category_id: int
    amount: Decimal
    description: Optional[str] = None
    date: dt.date
    type: EntryType
    created_at: dt.datetime


class TransactionPage(CamelModel):
    transactions: List[TransactionOut]
    total_pages: int
    current_page: int


class MessageOut(BaseModel):
    message: str
