"""Value types exchanged with the remote expense API.

Holds the fixed category and period enumerations, the Expense, ExpenseList and Stats
containers parsed from API responses, and the local validation of the login, signup and
add-expense forms. Validation errors are raised as
:class:`~ExpenseClient.status.status.ValidationException` and never reach the network.
"""
import dataclasses
import datetime
import decimal
import enum
import logging
import re
from typing import Any, Dict, List, Optional

from ..status import status


class Category(enum.StrEnum):
    """The fixed set of expense categories."""
    Groceries = 'Groceries'
    Entertainment = 'Entertainment'
    Transportation = 'Transportation'
    Food = 'Food'
    Health = 'Health'
    Shopping = 'Shopping'
    Bills = 'Bills'
    Education = 'Education'
    Other = 'Other'

    @classmethod
    def parse(cls, value: Any) -> 'Category':
        """Return the matching category, or Other for anything unknown."""
        try:
            return cls(str(value))
        except ValueError:
            logging.debug(f'Unknown category "{value}", using "{cls.Other}".')
            return cls.Other


class Period(enum.StrEnum):
    """Aggregation periods accepted by the stats endpoint."""
    Daily = 'daily'
    Weekly = 'weekly'
    Monthly = 'monthly'
    Yearly = 'yearly'


DEFAULT_CATEGORY: Category = Category.Other
DEFAULT_PERIOD: Period = Period.Weekly

OTP_PATTERN = re.compile(r'\d{4,6}')


def parse_datetime(value: Any) -> Optional[datetime.datetime]:
    """Parse an ISO 8601 timestamp as sent by the API.

    Accepts a trailing 'Z' for UTC. Returns None for empty or unparsable values.
    """
    if isinstance(value, datetime.datetime):
        return value
    if isinstance(value, datetime.date):
        return datetime.datetime.combine(value, datetime.time())
    if not value or not isinstance(value, str):
        return None

    text = value.strip()
    if text.endswith('Z'):
        text = text[:-1] + '+00:00'
    try:
        return datetime.datetime.fromisoformat(text)
    except ValueError:
        logging.debug(f'Could not parse "{value}" as a date.')
        return None


def to_iso(value: datetime.datetime) -> str:
    """Format a datetime as ISO 8601 with millisecond precision and a 'Z' suffix for UTC."""
    if value.tzinfo is not None:
        value = value.astimezone(datetime.timezone.utc).replace(tzinfo=None)
    return value.isoformat(timespec='milliseconds') + 'Z'


def parse_amount(value: Any) -> decimal.Decimal:
    """Convert a JSON number or numeric string to Decimal. Uncastable values become 0."""
    if isinstance(value, bool) or value is None:
        return decimal.Decimal(0)
    try:
        return decimal.Decimal(str(value))
    except decimal.InvalidOperation:
        logging.debug(f'Failed to parse "{value}" as an amount. Using 0.')
        return decimal.Decimal(0)


@dataclasses.dataclass(frozen=True)
class Expense:
    """A single expense as owned by the backend."""
    id: Optional[str]
    amount: decimal.Decimal
    category: Category
    description: str
    date: Optional[datetime.datetime]

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'Expense':
        _id = data.get('_id', data.get('id'))
        return cls(
            id=str(_id) if _id is not None else None,
            amount=parse_amount(data.get('amount')),
            category=Category.parse(data.get('category')),
            description=str(data.get('description') or ''),
            date=parse_datetime(data.get('date')),
        )


@dataclasses.dataclass(frozen=True)
class ExpenseList:
    """The expenses of the signed-in user and their server-side total."""
    expenses: List[Expense]
    total: decimal.Decimal

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'ExpenseList':
        items = data.get('expenses') or []
        return cls(
            expenses=[Expense.from_dict(e) for e in items if isinstance(e, dict)],
            total=parse_amount(data.get('total') or 0),
        )


@dataclasses.dataclass(frozen=True)
class Stats:
    """Aggregated spending for one period."""
    total_amount: float
    total_expenses: int
    chart_data: List[Dict[str, Any]]
    category_stats: Dict[str, float]

    @classmethod
    def empty(cls) -> 'Stats':
        return cls(total_amount=0.0, total_expenses=0, chart_data=[], category_stats={})

    @classmethod
    def from_dict(cls, data: Optional[Dict[str, Any]]) -> 'Stats':
        if not data:
            return cls.empty()
        chart_data = [
            {'date': parse_datetime(item.get('date')), 'amount': float(parse_amount(item.get('amount')))}
            for item in (data.get('chartData') or []) if isinstance(item, dict)
        ]
        category_stats = {
            str(k): float(parse_amount(v)) for k, v in (data.get('categoryStats') or {}).items()
        }
        return cls(
            total_amount=float(parse_amount(data.get('totalAmount') or 0)),
            total_expenses=int(data.get('totalExpenses') or 0),
            chart_data=chart_data,
            category_stats=category_stats,
        )

    @property
    def is_empty(self) -> bool:
        return self.total_amount == 0 and self.total_expenses == 0


@dataclasses.dataclass(frozen=True)
class ExpenseDraft:
    """A validated add-expense form, ready to be posted."""
    amount: decimal.Decimal
    category: Category
    description: str
    date: datetime.datetime

    def to_payload(self) -> Dict[str, Any]:
        return {
            'amount': float(self.amount),
            'category': self.category.value,
            'description': self.description,
            'date': to_iso(self.date),
        }


def validate_expense_form(
        amount_text: str,
        description: str,
        category: Any = DEFAULT_CATEGORY,
        date: Optional[datetime.datetime] = None,
) -> ExpenseDraft:
    """Validate the add-expense form fields.

    Args:
        amount_text: The amount as typed by the user.
        description: Free text, trimmed before use.
        category: A Category or its name. Unknown values become Other.
        date: The expense date, defaults to now.

    Returns:
        ExpenseDraft: The validated form.

    Raises:
        status.ValidationException: If a required field is empty or the amount is not a positive number.
    """
    amount_text = str(amount_text or '').strip()
    description = (description or '').strip()
    if not amount_text or not description:
        raise status.ValidationException('Please fill in all required fields')

    try:
        amount = decimal.Decimal(amount_text)
    except decimal.InvalidOperation:
        raise status.ValidationException('Please enter a valid amount')
    if not amount.is_finite() or amount <= 0:
        raise status.ValidationException('Please enter a valid amount')

    return ExpenseDraft(
        amount=amount,
        category=Category.parse(category),
        description=description,
        date=date or datetime.datetime.now(),
    )


def validate_login_form(email: str, password: str) -> None:
    """Raise a ValidationException if the email or password is missing."""
    if not (email or '').strip():
        raise status.ValidationException('Please enter email')
    if not password:
        raise status.ValidationException('Please enter password')


def validate_signup_form(name: str, email: str, password: str, confirm_password: str) -> None:
    """Raise a ValidationException for empty fields or mismatching passwords."""
    if not (name or '').strip() or not (email or '').strip() or not password:
        raise status.ValidationException('Please fill in all required fields')
    if password != confirm_password:
        raise status.ValidationException('Passwords do not match')


def validate_otp(otp: str) -> str:
    """Return the trimmed one-time password, or raise if it is not 4 to 6 digits."""
    otp = (otp or '').strip()
    if not OTP_PATTERN.fullmatch(otp):
        raise status.ValidationException('Please enter the code sent to your email')
    return otp
