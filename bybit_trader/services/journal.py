import uuid
from datetime import datetime, timedelta, timezone
from decimal import Decimal, InvalidOperation
from enum import Enum
from typing import Iterable, List, Optional, Union

from bybit_trader.core.exceptions import ValidationError
from bybit_trader.core.models import OrderStatus, OrderType, Side, Trade

Number = Union[str, int, float, Decimal]


class Period(Enum):
    DAY = "day"
    WEEK = "week"
    MONTH = "month"
    QUARTER = "quarter"
    YEAR = "year"
    ALL = "all"

    def start(self, now: datetime) -> Optional[datetime]:
        """Start of the period containing ``now``; None for ALL. Weeks start on Monday."""
        day = now.replace(hour=0, minute=0, second=0, microsecond=0)
        if self is Period.DAY:
            return day
        if self is Period.WEEK:
            return day - timedelta(days=day.weekday())
        if self is Period.MONTH:
            return day.replace(day=1)
        if self is Period.QUARTER:
            first_month = (day.month - 1) // 3 * 3 + 1
            return day.replace(month=first_month, day=1)
        if self is Period.YEAR:
            return day.replace(month=1, day=1)
        return None


def _matches(trade: Trade, needle: str) -> bool:
    if needle in trade.symbol.lower():
        return True
    if trade.notes and needle in trade.notes.lower():
        return True
    return any(needle in tag.lower() for tag in trade.tags)


def filter_trades(
    trades: Iterable[Trade],
    period: Period = Period.ALL,
    search: Optional[str] = None,
    tags: Optional[Iterable[str]] = None,
    start: Optional[datetime] = None,
    end: Optional[datetime] = None,
    now: Optional[datetime] = None,
) -> List[Trade]:
    """
    Journal filter.
    - period: keep trades created since the start of the current period
    - start/end: explicit inclusive range, applied on top of period
    - search: case-insensitive match on symbol, notes or any tag
    - tags: keep trades carrying at least one of the selected tags
    Input order is preserved.
    """
    now = now or datetime.now(timezone.utc)
    period_start = period.start(now)
    needle = search.strip().lower() if search else ""
    selected = set(tags or ())

    result = []
    for trade in trades:
        if period_start is not None and trade.created_at < period_start:
            continue
        if start is not None and trade.created_at < start:
            continue
        if end is not None and trade.created_at > end:
            continue
        if needle and not _matches(trade, needle):
            continue
        if selected and selected.isdisjoint(trade.tags):
            continue
        result.append(trade)
    return result


def collect_tags(trades: Iterable[Trade]) -> List[str]:
    return sorted({tag for trade in trades for tag in trade.tags})


def _parse_amount(value: Optional[Number], field: str, allow_zero: bool = False) -> Decimal:
    if value is None or str(value).strip() == "":
        raise ValidationError(f"{field} is required")
    try:
        parsed = Decimal(str(value).strip())
    except (InvalidOperation, ValueError):
        raise ValidationError(f"{field} must be numeric, got {value!r}")
    if not parsed.is_finite() or parsed < 0 or (parsed == 0 and not allow_zero):
        raise ValidationError(f"{field} must be {'non-negative' if allow_zero else 'positive'}, got {value!r}")
    return parsed


def _parse_pnl(value: Optional[Number]) -> Optional[Decimal]:
    """Realized P&L is optional and may be negative."""
    if value is None or str(value).strip() == "":
        return None
    try:
        parsed = Decimal(str(value).strip())
    except (InvalidOperation, ValueError):
        raise ValidationError(f"realized P&L must be numeric, got {value!r}")
    if not parsed.is_finite():
        raise ValidationError(f"realized P&L must be finite, got {value!r}")
    return parsed


def _clean_tags(tags: Optional[Iterable[str]]) -> tuple:
    cleaned = tuple(t.strip() for t in (tags or ()) if t and t.strip())
    for tag in cleaned:
        # Exported files join tags with "; "
        if ";" in tag:
            raise ValidationError(f"tag must not contain ';', got {tag!r}")
    return cleaned


def build_manual_trade(
    user_id: str,
    symbol: str,
    side: Side,
    order_type: OrderType,
    quantity: Number,
    price: Number,
    fee: Number = "0",
    notes: Optional[str] = None,
    tags: Optional[Iterable[str]] = None,
    realized_pnl: Optional[Number] = None,
    now: Optional[datetime] = None,
) -> Trade:
    """
    Validates a hand-entered journal entry and builds a filled Trade from it.
    realized_pnl is the closed result of the trade, if the user entered one.
    """
    symbol = (symbol or "").strip().upper()
    if not symbol:
        raise ValidationError("symbol is required")
    qty = _parse_amount(quantity, "quantity")
    prc = _parse_amount(price, "price")
    fee_value = _parse_amount(fee if fee not in (None, "") else "0", "fee", allow_zero=True)
    pnl = _parse_pnl(realized_pnl)
    tag_values = _clean_tags(tags)
    now = now or datetime.now(timezone.utc)

    return Trade(
        id=str(uuid.uuid4()),
        user_id=user_id,
        symbol=symbol,
        side=side,
        order_type=order_type,
        quantity=qty,
        price=prc,
        fee=fee_value,
        status=OrderStatus.FILLED,
        created_at=now,
        updated_at=now,
        executed_price=prc,
        total_amount=qty * prc,
        notes=(notes or "").strip() or None,
        tags=tag_values,
        executed_at=now,
        realized_pnl=pnl,
    )
