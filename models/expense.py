"""Pydantic model and validation rules for Expense data"""
import math
from datetime import date, datetime, timedelta, timezone
from typing import Any, Dict, List, Optional, Tuple

from pydantic import BaseModel, ConfigDict, Field, field_serializer

CATEGORIES = (
    'Food', 'Transportation', 'Entertainment', 'Shopping', 'Utilities', 'Housing',
    'Healthcare', 'Personal', 'Education', 'Gifts', 'Travel', 'Other',
)
DEFAULT_CATEGORY = 'Other'

TITLE_MAX_LENGTH = 100
DESCRIPTION_MAX_LENGTH = 500

EDITABLE_FIELDS = ('title', 'amount', 'category', 'date', 'description')
SORTABLE_FIELDS = EDITABLE_FIELDS + ('createdAt', 'updatedAt')


class Expense(BaseModel):
    """
    Represents a single stored expense, as returned by the API.
    """
    model_config = ConfigDict(populate_by_name=True)

    id: str = Field(alias='_id')
    title: str
    amount: float
    category: str
    date: datetime
    description: Optional[str] = None
    created_at: datetime = Field(alias='createdAt')
    updated_at: datetime = Field(alias='updatedAt')

    @field_serializer('date', 'created_at', 'updated_at')
    def serialize_timestamp(self, value: datetime) -> str:
        return value.isoformat(timespec='milliseconds') + 'Z'

    @classmethod
    def from_document(cls, doc: Dict[str, Any]) -> 'Expense':
        doc = dict(doc)
        doc['_id'] = str(doc['_id'])
        return cls(**doc)

    def to_response(self) -> Dict[str, Any]:
        return self.model_dump(mode='json', by_alias=True, exclude_none=True)


def utcnow() -> datetime:
    """Naive UTC now, truncated to the millisecond precision MongoDB keeps."""
    now = datetime.now(timezone.utc).replace(tzinfo=None)
    return now.replace(microsecond=now.microsecond // 1000 * 1000)


def parse_datetime(value: Any) -> Optional[datetime]:
    """Parses an ISO-8601 date or date-time into a naive UTC datetime; None if unparseable."""
    if isinstance(value, datetime):
        parsed = value
    elif isinstance(value, date):
        return datetime.combine(value, datetime.min.time())
    elif isinstance(value, str) and value.strip():
        text = value.strip()
        if text.endswith(('Z', 'z')):
            text = text[:-1] + '+00:00'
        try:
            parsed = datetime.fromisoformat(text)
        except ValueError:
            return None
    else:
        return None
    if parsed.tzinfo is not None:
        try:
            parsed = parsed.astimezone(timezone.utc).replace(tzinfo=None)
        except OverflowError:
            # e.g. 0001-01-01T00:00:00+01:00 falls before year 1 in UTC
            return None
    return parsed.replace(microsecond=parsed.microsecond // 1000 * 1000)


def is_date_only(value: str) -> bool:
    try:
        date.fromisoformat(value.strip())
    except ValueError:
        return False
    return True


def end_of_day(value: datetime) -> datetime:
    """Exclusive upper bound covering the whole calendar day of `value`."""
    return datetime.combine(value.date(), datetime.min.time()) + timedelta(days=1)


def _clean_text(value: Any) -> Any:
    """Strips strings; numbers are cast to their text form, anything else is returned as is."""
    if isinstance(value, (int, float)) and not isinstance(value, bool):
        value = str(value)
    return value.strip() if isinstance(value, str) else value


def _validate_amount(value: Any) -> Tuple[Optional[float], Optional[str]]:
    if value is None or (isinstance(value, str) and not value.strip()):
        return None, 'Please add an amount'
    if isinstance(value, bool):
        return None, 'Amount must be a number'
    try:
        amount = float(value)
    except (TypeError, ValueError, OverflowError):
        return None, 'Amount must be a number'
    if math.isnan(amount) or math.isinf(amount):
        return None, 'Amount must be a number'
    if amount < 0:
        return None, 'Amount must be a positive number'
    return amount, None


def validate_expense(draft: Dict[str, Any]) -> Tuple[Dict[str, Any], List[str]]:
    """
    Checks an expense draft against the data model and normalises it.

    Only the editable fields are read; anything else in the draft is ignored.
    Missing `category` and `date` get their defaults. Returns the cleaned
    fields and a list with one message per violated field (empty when valid).
    """
    errors: List[str] = []
    clean: Dict[str, Any] = {}

    title = _clean_text(draft.get('title'))
    if title is None or title == '':
        errors.append('Please add a title')
    elif not isinstance(title, str):
        errors.append('Title must be text')
    elif len(title) > TITLE_MAX_LENGTH:
        errors.append(f'Title cannot be more than {TITLE_MAX_LENGTH} characters')
    else:
        clean['title'] = title

    amount, amount_error = _validate_amount(draft.get('amount'))
    if amount_error:
        errors.append(amount_error)
    else:
        clean['amount'] = amount

    category = draft.get('category', DEFAULT_CATEGORY)
    if category is None or category == '':
        errors.append('Please add a category')
    elif category not in CATEGORIES:
        errors.append(f"'{category}' is not a valid category")
    else:
        clean['category'] = category

    if 'date' in draft:
        parsed_date = parse_datetime(draft['date'])
        if parsed_date is None:
            errors.append('Please add a valid date')
        else:
            clean['date'] = parsed_date
    else:
        clean['date'] = utcnow()

    description = _clean_text(draft.get('description'))
    if description is None or description == '':
        clean['description'] = None
    elif not isinstance(description, str):
        errors.append('Description must be text')
    elif len(description) > DESCRIPTION_MAX_LENGTH:
        errors.append(f'Description cannot be more than {DESCRIPTION_MAX_LENGTH} characters')
    else:
        clean['description'] = description

    return clean, errors
