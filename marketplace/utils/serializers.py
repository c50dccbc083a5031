"""JSON helpers for service results (Decimals, datetimes, models)."""
import enum
from datetime import datetime, date
from decimal import Decimal
from marketplace.utils.money import as_number


def jsonable(value):
    """Recursively convert a service result into JSON-serializable values."""
    if isinstance(value, Decimal):
        return as_number(value)
    if isinstance(value, (datetime, date)):
        return value.isoformat()
    if isinstance(value, dict):
        return {key: jsonable(item) for key, item in value.items()}
    if isinstance(value, (list, tuple)):
        return [jsonable(item) for item in value]
    if hasattr(value, 'to_dict'):
        return jsonable(value.to_dict())
    if isinstance(value, enum.Enum):
        return value.value
    return value
