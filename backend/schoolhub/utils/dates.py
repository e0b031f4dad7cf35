from datetime import datetime, date

from schoolhub.errors import ValidationError


def parse_date(value, field="date"):
    """Accept a date, a datetime or a YYYY-MM-DD string and return a date."""
    if value is None:
        return None
    if isinstance(value, datetime):
        return value.date()
    if isinstance(value, date):
        return value
    try:
        return datetime.strptime(str(value)[:10], "%Y-%m-%d").date()
    except ValueError:
        raise ValidationError(f"Invalid {field} format, expected YYYY-MM-DD")
