"""Delivery zones."""
import enum


class Zone(str, enum.Enum):
    """Delivery-area tags used for vendor fees, promotions and product availability."""
    KARKH = 'KARKH'
    RUSAFA = 'RUSAFA'


def normalize_zone(value):
    """Return the Zone for a raw value, or None when it is empty or unknown."""
    if value is None or value == '':
        return None
    if isinstance(value, Zone):
        return value
    try:
        return Zone(str(value).strip().upper())
    except ValueError:
        return None
