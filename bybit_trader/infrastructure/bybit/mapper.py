from datetime import datetime, timezone
from decimal import Decimal, InvalidOperation
from typing import Any, Dict, List, Optional

from bybit_trader.core.exceptions import ValidationError
from bybit_trader.core.models import (
    Balance,
    ClosedPnl,
    Kline,
    OrderHistory,
    OrderResult,
    OrderStatus,
    OrderType,
    Position,
    PositionSide,
    Side,
    Ticker,
)

_WIRE_SIDES = {Side.BUY: "Buy", Side.SELL: "Sell"}
_WIRE_ORDER_TYPES = {OrderType.MARKET: "Market", OrderType.LIMIT: "Limit"}

_STATUS_MAP = {
    "Filled": OrderStatus.FILLED,
    "Cancelled": OrderStatus.CANCELLED,
    "PartiallyFilledCanceled": OrderStatus.CANCELLED,
    "Deactivated": OrderStatus.CANCELLED,
    "Rejected": OrderStatus.REJECTED,
}

EPOCH = datetime.fromtimestamp(0, tz=timezone.utc)


class BybitMapper:
    """
    Converts raw Bybit V5 JSON into core models, and core enums into wire strings.
    Every numeric field arrives as a string and goes through to_decimal.
    """

    @staticmethod
    def to_decimal(value: Any) -> Decimal:
        """Absent or malformed values become zero."""
        if value is None or value == "":
            return Decimal("0")
        try:
            result = Decimal(str(value).strip())
        except (InvalidOperation, ValueError):
            return Decimal("0")
        if not result.is_finite():
            return Decimal("0")
        return result

    @staticmethod
    def to_datetime(ms: Any) -> datetime:
        try:
            return datetime.fromtimestamp(int(ms) / 1000, tz=timezone.utc)
        except (TypeError, ValueError, OverflowError, OSError):
            return EPOCH

    # --- enums <-> wire -------------------------------------------------

    @staticmethod
    def to_wire_side(side: Side) -> str:
        return _WIRE_SIDES[side]

    @staticmethod
    def to_wire_order_type(order_type: OrderType) -> str:
        if order_type not in _WIRE_ORDER_TYPES:
            raise ValidationError(f"Unsupported order type for placement: {order_type.value}")
        return _WIRE_ORDER_TYPES[order_type]

    @staticmethod
    def to_side(raw: Any) -> Side:
        return Side.SELL if str(raw).lower() == "sell" else Side.BUY

    @staticmethod
    def to_order_type(raw: Any, stop_order_type: Any = "") -> OrderType:
        is_limit = str(raw).lower() == "limit"
        if stop_order_type:
            return OrderType.STOP_LIMIT if is_limit else OrderType.STOP
        return OrderType.LIMIT if is_limit else OrderType.MARKET

    @staticmethod
    def to_order_status(raw: Any) -> OrderStatus:
        # New, PartiallyFilled, Untriggered and anything unknown are still open
        return _STATUS_MAP.get(str(raw), OrderStatus.PENDING)

    # --- payloads ---------------------------------------------------------

    @staticmethod
    def to_balances(result: Dict[str, Any]) -> List[Balance]:
        """Flattens wallet-balance accounts into one Balance per coin."""
        balances = []
        for account in result.get("list") or []:
            for raw in account.get("coin") or []:
                available = raw.get("availableToWithdraw")
                if available in (None, ""):
                    available = raw.get("availableBalance")
                balances.append(Balance(
                    coin=raw.get("coin", ""),
                    wallet_balance=BybitMapper.to_decimal(raw.get("walletBalance")),
                    available_balance=BybitMapper.to_decimal(available),
                    unrealized_pnl=BybitMapper.to_decimal(
                        raw.get("unrealisedPnl", raw.get("unrealizedPnl"))
                    ),
                ))
        return balances

    @staticmethod
    def to_position(raw: Dict[str, Any]) -> Optional[Position]:
        """Returns None for empty one-way slots (no side)."""
        side = str(raw.get("side", ""))
        if side not in ("Buy", "Sell"):
            return None
        return Position(
            symbol=raw.get("symbol", ""),
            side=PositionSide.LONG if side == "Buy" else PositionSide.SHORT,
            size=BybitMapper.to_decimal(raw.get("size")),
            entry_price=BybitMapper.to_decimal(raw.get("avgPrice", raw.get("entryPrice"))),
            mark_price=BybitMapper.to_decimal(raw.get("markPrice")),
            leverage=BybitMapper.to_decimal(raw.get("leverage")),
            unrealized_pnl=BybitMapper.to_decimal(
                raw.get("unrealisedPnl", raw.get("unrealizedPnl"))
            ),
            position_value=BybitMapper.to_decimal(raw.get("positionValue")),
        )

    @staticmethod
    def to_order_history(raw: Dict[str, Any]) -> OrderHistory:
        return OrderHistory(
            order_id=str(raw.get("orderId", "")),
            symbol=raw.get("symbol", ""),
            side=BybitMapper.to_side(raw.get("side")),
            order_type=BybitMapper.to_order_type(raw.get("orderType"), raw.get("stopOrderType")),
            qty=BybitMapper.to_decimal(raw.get("qty")),
            price=BybitMapper.to_decimal(raw.get("price")),
            executed_qty=BybitMapper.to_decimal(raw.get("cumExecQty", raw.get("executedQty"))),
            avg_price=BybitMapper.to_decimal(raw.get("avgPrice")),
            status=BybitMapper.to_order_status(raw.get("orderStatus", raw.get("status"))),
            create_time=BybitMapper.to_datetime(raw.get("createdTime", raw.get("createTime"))),
            cum_exec_fee=BybitMapper.to_decimal(raw.get("cumExecFee")),
        )

    @staticmethod
    def to_closed_pnl(raw: Dict[str, Any]) -> ClosedPnl:
        """
        Closed P&L record. `side` is the side of the closing order,
        so a Sell record closes a long position.
        """
        return ClosedPnl(
            order_id=str(raw.get("orderId", "")),
            symbol=raw.get("symbol", ""),
            side=BybitMapper.to_side(raw.get("side")),
            qty=BybitMapper.to_decimal(raw.get("closedSize", raw.get("qty"))),
            avg_entry_price=BybitMapper.to_decimal(raw.get("avgEntryPrice")),
            avg_exit_price=BybitMapper.to_decimal(raw.get("avgExitPrice")),
            closed_pnl=BybitMapper.to_decimal(raw.get("closedPnl")),
            created_time=BybitMapper.to_datetime(raw.get("updatedTime", raw.get("createdTime"))),
        )

    @staticmethod
    def to_ticker(raw: Dict[str, Any]) -> Ticker:
        return Ticker(
            symbol=raw.get("symbol", ""),
            last_price=BybitMapper.to_decimal(raw.get("lastPrice")),
            prev_price_24h=BybitMapper.to_decimal(raw.get("prevPrice24h")),
            price_24h_pcnt=BybitMapper.to_decimal(raw.get("price24hPcnt")),
            high_price_24h=BybitMapper.to_decimal(raw.get("highPrice24h")),
            low_price_24h=BybitMapper.to_decimal(raw.get("lowPrice24h")),
            turnover_24h=BybitMapper.to_decimal(raw.get("turnover24h")),
            volume_24h=BybitMapper.to_decimal(raw.get("volume24h")),
        )

    @staticmethod
    def to_kline(raw: List[Any]) -> Kline:
        """Kline rows are positional: [start, open, high, low, close, volume, turnover]."""
        cells = list(raw) + [None] * (6 - len(raw))
        return Kline(
            start_time=BybitMapper.to_datetime(cells[0]),
            open=BybitMapper.to_decimal(cells[1]),
            high=BybitMapper.to_decimal(cells[2]),
            low=BybitMapper.to_decimal(cells[3]),
            close=BybitMapper.to_decimal(cells[4]),
            volume=BybitMapper.to_decimal(cells[5]),
        )

    @staticmethod
    def to_order_result(result: Dict[str, Any]) -> OrderResult:
        return OrderResult(
            order_id=str(result.get("orderId", "")),
            order_link_id=str(result.get("orderLinkId", "")),
        )
