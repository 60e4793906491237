"""
FinanceApp - Request Models

pydantic models for every JSON body the API accepts. Keys arrive in
camelCase from the web client; snake_case is accepted as well. Route
handlers call `model_dump(exclude_unset=True)` so partial updates only
touch the fields the client actually sent.
"""

import datetime
from decimal import Decimal
from typing import List, Literal, Optional

from pydantic import AliasChoices, BaseModel, ConfigDict, Field, field_validator, model_validator
from pydantic.alias_generators import to_camel

ACCOUNT_TYPES = Literal['checking', 'savings', 'investment', 'credit_card']
CATEGORY_TYPES = Literal['income', 'expense']
TRANSACTION_TYPES = Literal['income', 'expense', 'transfer']
BUDGET_PERIODS = Literal['monthly', 'yearly']


class CamelModel(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True, extra='ignore')


def normalize_email(value):
    """Emails are stored and looked up lowercased."""
    if value is None:
        return None
    return value.strip().lower()


# =============================================================================
# AUTHENTICATION
# =============================================================================

class LoginRequest(CamelModel):
    """Either a username or an email identifies the user."""
    username: Optional[str] = None
    email: Optional[str] = None
    password: str = Field(min_length=1)

    @field_validator('email')
    @classmethod
    def lowercase_email(cls, value):
        return normalize_email(value)

    @model_validator(mode='after')
    def require_identifier(self):
        if not (self.username or self.email):
            raise ValueError("username or email is required")
        return self


class RegisterRequest(CamelModel):
    username: str = Field(min_length=3, max_length=50)
    email: str = Field(min_length=3, max_length=255)
    password: str = Field(min_length=6)
    security_phrase: Optional[str] = None

    @field_validator('email')
    @classmethod
    def email_has_at(cls, value):
        if '@' not in value:
            raise ValueError("invalid email address")
        return normalize_email(value)


class ResetPasswordRequest(CamelModel):
    email: str
    security_phrase: str = Field(min_length=1)
    new_password: str = Field(min_length=6)

    @field_validator('email')
    @classmethod
    def lowercase_email(cls, value):
        return normalize_email(value)


# =============================================================================
# ACCOUNTS & CATEGORIES
# =============================================================================

class AccountCreate(CamelModel):
    name: str = Field(min_length=1)
    type: ACCOUNT_TYPES
    balance: Decimal = Decimal('0.00')
    credit_limit: Optional[Decimal] = None
    closing_day: Optional[int] = Field(default=None, ge=1, le=31)
    due_day: Optional[int] = Field(default=None, ge=1, le=31)
    domain: Optional[str] = None


class AccountUpdate(CamelModel):
    name: Optional[str] = Field(default=None, min_length=1)
    type: Optional[ACCOUNT_TYPES] = None
    balance: Optional[Decimal] = None
    credit_limit: Optional[Decimal] = None
    closing_day: Optional[int] = Field(default=None, ge=1, le=31)
    due_day: Optional[int] = Field(default=None, ge=1, le=31)
    domain: Optional[str] = None


class CategoryCreate(CamelModel):
    name: str = Field(min_length=1)
    type: CATEGORY_TYPES
    color: str = '#1E40AF'
    icon: str = 'Tag'


class CategoryUpdate(CamelModel):
    name: Optional[str] = Field(default=None, min_length=1)
    type: Optional[CATEGORY_TYPES] = None
    color: Optional[str] = None
    icon: Optional[str] = None


# =============================================================================
# TRANSACTIONS
# =============================================================================

class TransactionCreate(CamelModel):
    account_id: int
    category_id: int
    title: str = Field(min_length=1)
    amount: Decimal
    type: TRANSACTION_TYPES
    description: Optional[str] = None
    date: datetime.date
    due_date: Optional[datetime.date] = None
    paid_date: Optional[datetime.date] = None
    is_paid: bool = False
    is_recurring: bool = False
    recurrence_type: Optional[str] = None
    recurrence_interval: int = Field(default=1, ge=1)
    recurrence_end_date: Optional[datetime.date] = None
    attachment_url: Optional[str] = None


class TransactionUpdate(CamelModel):
    account_id: Optional[int] = None
    category_id: Optional[int] = None
    title: Optional[str] = Field(default=None, min_length=1)
    amount: Optional[Decimal] = None
    type: Optional[TRANSACTION_TYPES] = None
    description: Optional[str] = None
    date: Optional[datetime.date] = None
    due_date: Optional[datetime.date] = None
    paid_date: Optional[datetime.date] = None
    is_paid: Optional[bool] = None
    is_recurring: Optional[bool] = None
    recurrence_type: Optional[str] = None
    recurrence_interval: Optional[int] = Field(default=None, ge=1)
    recurrence_end_date: Optional[datetime.date] = None
    attachment_url: Optional[str] = None


# =============================================================================
# BUDGETS, INVESTMENTS, GOALS
# =============================================================================

class BudgetCreate(CamelModel):
    category_id: int
    name: str = Field(min_length=1)
    amount: Decimal
    period: BUDGET_PERIODS = 'monthly'
    start_date: datetime.date
    end_date: Optional[datetime.date] = None


class BudgetUpdate(CamelModel):
    category_id: Optional[int] = None
    name: Optional[str] = Field(default=None, min_length=1)
    amount: Optional[Decimal] = None
    period: Optional[BUDGET_PERIODS] = None
    start_date: Optional[datetime.date] = None
    end_date: Optional[datetime.date] = None


class InvestmentCreate(CamelModel):
    name: str = Field(min_length=1)
    type: str = Field(min_length=1)
    institution: str = Field(min_length=1)
    initial_amount: Decimal
    current_amount: Optional[Decimal] = None
    expected_return: Optional[Decimal] = None
    start_date: datetime.date
    maturity_date: Optional[datetime.date] = None


class InvestmentUpdate(CamelModel):
    name: Optional[str] = Field(default=None, min_length=1)
    type: Optional[str] = None
    institution: Optional[str] = None
    initial_amount: Optional[Decimal] = None
    current_amount: Optional[Decimal] = None
    expected_return: Optional[Decimal] = None
    start_date: Optional[datetime.date] = None
    maturity_date: Optional[datetime.date] = None


class GoalCreate(CamelModel):
    name: str = Field(min_length=1)
    target_amount: Decimal
    current_amount: Decimal = Decimal('0.00')
    target_date: datetime.date
    category: str = Field(min_length=1)


class GoalUpdate(CamelModel):
    name: Optional[str] = Field(default=None, min_length=1)
    target_amount: Optional[Decimal] = None
    current_amount: Optional[Decimal] = None
    target_date: Optional[datetime.date] = None
    category: Optional[str] = None


# =============================================================================
# DASHBOARD FILTERS
# =============================================================================

class DateRange(CamelModel):
    start_date: Optional[datetime.date] = None
    end_date: Optional[datetime.date] = None
    period: Optional[str] = None

    @field_validator('start_date', 'end_date', mode='before')
    @classmethod
    def blank_is_open(cls, value):
        return None if value == '' else value


class AmountRange(CamelModel):
    min: Optional[Decimal] = None
    max: Optional[Decimal] = None

    @field_validator('min', 'max', mode='before')
    @classmethod
    def blank_is_unbounded(cls, value):
        return None if value == '' else value


class DashboardFilterRequest(CamelModel):
    """
    Dashboard filters. Empty collections mean "no constraint";
    the date range only applies when both bounds are present.
    """
    date_range: Optional[DateRange] = None
    accounts: List[int] = Field(default_factory=list)
    categories: List[int] = Field(default_factory=list)
    transaction_types: List[TRANSACTION_TYPES] = Field(default_factory=list)
    amount_range: Optional[AmountRange] = None
    include_investments: bool = True

    @property
    def start_date(self):
        return self.date_range.start_date if self.date_range else None

    @property
    def end_date(self):
        return self.date_range.end_date if self.date_range else None

    @property
    def has_date_range(self):
        return self.start_date is not None and self.end_date is not None

    @property
    def min_amount(self):
        return self.amount_range.min if self.amount_range else None

    @property
    def max_amount(self):
        return self.amount_range.max if self.amount_range else None


# =============================================================================
# DATA MANAGEMENT
# =============================================================================

class ImportRequest(CamelModel):
    """A backup document, either inline or as raw JSON text."""
    backup: Optional[dict] = None
    content: Optional[str] = Field(default=None, validation_alias=AliasChoices('content', 'sqlContent'))

    @model_validator(mode='after')
    def require_payload(self):
        if self.backup is None and not self.content:
            raise ValueError("backup or content is required")
        return self
