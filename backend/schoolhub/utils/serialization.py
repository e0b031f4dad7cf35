
from enum import Enum
from decimal import Decimal
from datetime import datetime, date
from sqlalchemy.inspection import inspect

HIDDEN_FIELDS = {"password_hash"}

def to_dict(model_instance, include_hidden=False, **extra):
    output = {}
    mapper = inspect(model_instance.__class__)

    for column in mapper.columns:
        key = column.key
        value = getattr(model_instance, key)

        if not include_hidden and key in HIDDEN_FIELDS:
            continue

        output[key] = to_primitive(value)

    for key, value in extra.items():
        output[key] = to_primitive(value)

    return output

def to_primitive(value):
    if isinstance(value, Enum):
        return value.value
    if isinstance(value, (datetime, date)):
        return value.isoformat()
    if isinstance(value, Decimal):
        return float(value)
    return value
