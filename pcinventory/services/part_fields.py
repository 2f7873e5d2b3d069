"""
Field coercion shared by every path that writes a part or a build line.
"""
from datetime import date, datetime, timezone
from decimal import ROUND_HALF_UP, Decimal, InvalidOperation
from typing import Any, Iterable, List, Optional

from pcinventory.db.enums import BUILD_LINE_ORDER, PartStatus, PartType
from pcinventory.errors import ValidationError

CENT = Decimal("0.01")

TYPE_ALIASES = {
    "graphics card": PartType.GPU,
}


def normalize_type(raw: Any) -> str:
    '''
    类别规范化：大小写不敏感匹配枚举，别名映射，其余一律归为 Other
    '''
    text = str(raw or "").strip()
    if not text:
        return PartType.Other.value
    lowered = text.lower()
    for member in PartType:
        if member.value.lower() == lowered:
            return member.value
    if lowered in TYPE_ALIASES:
        return TYPE_ALIASES[lowered].value
    return PartType.Other.value


def coerce_price(raw: Any) -> Decimal:
    '''Unparseable or empty -> 0; negative -> ValidationError; rounded half up to cents.'''
    if raw is None or raw == "" or isinstance(raw, bool):
        return Decimal("0")
    try:
        value = Decimal(str(raw).strip())
    except (InvalidOperation, ValueError):
        return Decimal("0")
    if not value.is_finite():
        return Decimal("0")
    if value < 0:
        raise ValidationError(f"price must be >= 0, got {raw}")
    try:
        return value.quantize(CENT, rounding=ROUND_HALF_UP)
    except InvalidOperation as e:
        raise ValidationError(f"price out of range: {raw}") from e


def coerce_quantity(raw: Any, default: int = 1) -> int:
    '''
    Empty, zero or unparseable -> default; negative or fractional -> ValidationError.
    '''
    if raw is None or raw == "" or isinstance(raw, bool):
        return default
    try:
        value = Decimal(str(raw).strip())
    except (InvalidOperation, ValueError):
        return default
    if not value.is_finite() or value == 0:
        return default
    if value < 0:
        raise ValidationError(f"quantity must be >= 0, got {raw}")
    if value != value.to_integral_value():
        raise ValidationError(f"quantity must be a whole number, got {raw}")
    return int(value)


def coerce_purchase_date(raw: Any) -> Optional[date]:
    '''
    Accepts date / datetime / ISO string / {"seconds": ...} timestamp dicts.
    '''
    if raw is None or raw == "":
        return None
    if isinstance(raw, datetime):
        return raw.date()
    if isinstance(raw, date):
        return raw
    if isinstance(raw, dict):
        seconds = raw.get("seconds", raw.get("_seconds"))
        if seconds is None:
            raise ValidationError(f"unrecognized purchase date: {raw}")
        return datetime.fromtimestamp(int(seconds), tz=timezone.utc).date()
    text = str(raw).strip()
    try:
        return date.fromisoformat(text[:10])
    except ValueError as e:
        raise ValidationError(f"invalid purchase date: {raw}") from e


def coerce_status(raw: Any) -> PartStatus:
    if raw is None or raw == "":
        return PartStatus.in_inventory
    if isinstance(raw, PartStatus):
        return raw
    try:
        return PartStatus(str(raw).strip())
    except ValueError as e:
        raise ValidationError(f"unknown part status: {raw}") from e


def line_type_rank(part_type: Any) -> int:
    return BUILD_LINE_ORDER.get(str(part_type or "").strip().lower(), len(BUILD_LINE_ORDER))


def sort_build_lines(lines: Iterable) -> List:
    '''Fixed category order, unknown categories last, stable otherwise.'''
    return sorted(lines, key=lambda line: line_type_rank(line.type))


def build_total(lines: Iterable) -> Decimal:
    return sum((line.unit_price * line.quantity for line in lines), Decimal("0"))
