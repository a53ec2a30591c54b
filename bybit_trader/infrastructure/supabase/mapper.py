import re
from datetime import datetime, timezone
from decimal import Decimal, InvalidOperation
from typing import Any, Dict, Optional

from bybit_trader.core.exceptions import PersistenceError
from bybit_trader.core.models import OrderStatus, OrderType, Side, Trade

_FRACTION = re.compile(r"\.(\d+)")


def parse_timestamp(value: Optional[str]) -> Optional[datetime]:
    """
    Parses the ISO-8601 strings PostgREST returns.
    Accepts a trailing 'Z' and any number of fractional digits; naive values are UTC.
    """
    if not value:
        return None
    text = str(value).strip().replace(" ", "T", 1)
    if text.endswith("Z"):
        text = text[:-1] + "+00:00"
    text = _FRACTION.sub(lambda m: "." + m.group(1)[:6].ljust(6, "0"), text, count=1)
    parsed = datetime.fromisoformat(text)
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed


def format_timestamp(value: Optional[datetime]) -> Optional[str]:
    if value is None:
        return None
    if value.tzinfo is None:
        value = value.replace(tzinfo=timezone.utc)
    return value.isoformat()


def _decimal(value: Any) -> Optional[Decimal]:
    if value is None or value == "":
        return None
    return Decimal(str(value))


def _text(value: Optional[Decimal]) -> Optional[str]:
    return None if value is None else str(value)


class TradeRowMapper:
    """
    Converts Trade objects to and from rows of the `trades` table.
    Column names follow the database schema (snake_case).
    """

    @staticmethod
    def to_row(trade: Trade) -> Dict[str, Any]:
        row = {
            "id": trade.id,
            "user_id": trade.user_id,
            "symbol": trade.symbol,
            "side": trade.side.value,
            "order_type": trade.order_type.value,
            "quantity": _text(trade.quantity),
            "price": _text(trade.price),
            "executed_price": _text(trade.executed_price),
            "total_amount": _text(trade.total_amount),
            "realized_pnl": _text(trade.realized_pnl),
            "fee": _text(trade.fee),
            "status": trade.status.value,
            "bybit_order_id": trade.bybit_order_id,
            "notes": trade.notes,
            "tags": list(trade.tags),
            "created_at": format_timestamp(trade.created_at),
            "executed_at": format_timestamp(trade.executed_at),
            "updated_at": format_timestamp(trade.updated_at),
        }
        return row

    @staticmethod
    def from_row(row: Dict[str, Any]) -> Trade:
        try:
            created_at = parse_timestamp(row.get("created_at"))
            if created_at is None:
                raise ValueError("created_at is missing")
            return Trade(
                id=str(row.get("id", "")),
                user_id=str(row.get("user_id") or ""),
                symbol=row["symbol"],
                side=Side(row["side"]),
                order_type=OrderType(row["order_type"]),
                quantity=_decimal(row.get("quantity")) or Decimal("0"),
                price=_decimal(row.get("price")) or Decimal("0"),
                fee=_decimal(row.get("fee")) or Decimal("0"),
                status=OrderStatus(row.get("status") or OrderStatus.PENDING.value),
                created_at=created_at,
                updated_at=parse_timestamp(row.get("updated_at")) or created_at,
                executed_price=_decimal(row.get("executed_price")),
                total_amount=_decimal(row.get("total_amount")),
                notes=row.get("notes"),
                tags=tuple(row.get("tags") or ()),
                executed_at=parse_timestamp(row.get("executed_at")),
                bybit_order_id=row.get("bybit_order_id"),
                realized_pnl=_decimal(row.get("realized_pnl")),
            )
        except (KeyError, ValueError, TypeError, InvalidOperation) as e:
            raise PersistenceError(f"Malformed trade row {row.get('id', '?')}: {e}") from e
