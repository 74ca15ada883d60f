from datetime import datetime, timezone
from typing import Any, Optional

from pydantic import TypeAdapter, ValidationError

_DATETIME = TypeAdapter(datetime)


def empty_to_none(value: Any) -> Any:
    # the backend serializes unset dates as "null" or ""
    if isinstance(value, str) and value.strip().lower() in ("", "null", "none", "undefined"):
        return None
    return value


def ensure_utc(value: Optional[datetime]) -> Optional[datetime]:
    """Naive timestamps from the backend are UTC"""
    if value is None:
        return None
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


def is_parseable_datetime(value: Any) -> bool:
    try:
        _DATETIME.validate_python(value)
    except ValidationError:
        return False
    return True


def validation_reason(error: ValidationError) -> str:
    return "; ".join(
        f"{'.'.join(str(part) for part in err['loc']) or 'record'}: {err['msg']}"
        for err in error.errors()
    )
