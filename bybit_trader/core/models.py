from dataclasses import dataclass, field
from datetime import datetime
from decimal import Decimal
from enum import Enum
from typing import Optional, Tuple


class Side(Enum):
    BUY = "buy"
    SELL = "sell"

    def opposite(self) -> "Side":
        return Side.SELL if self is Side.BUY else Side.BUY


class PositionSide(Enum):
    LONG = "long"
    SHORT = "short"

    def closing_side(self) -> Side:
        """Order side that reduces a position of this side."""
        return Side.SELL if self is PositionSide.LONG else Side.BUY


class OrderType(Enum):
    MARKET = "market"
    LIMIT = "limit"
    STOP = "stop"
    STOP_LIMIT = "stop_limit"


class TimeInForce(Enum):
    GTC = "GTC"
    IOC = "IOC"
    FOK = "FOK"
    POST_ONLY = "PostOnly"


class OrderStatus(Enum):
    PENDING = "pending"
    FILLED = "filled"
    CANCELLED = "cancelled"
    REJECTED = "rejected"


class KlineInterval(Enum):
    M1 = "1"
    M3 = "3"
    M5 = "5"
    M15 = "15"
    M30 = "30"
    H1 = "60"
    H2 = "120"
    H4 = "240"
    H6 = "360"
    H12 = "720"
    D1 = "D"
    W1 = "W"
    MN1 = "M"


@dataclass(frozen=True)
class Credential:
    """
    Exchange API credential.
    Held by the client for its lifetime; never logged.
    """
    api_key: str
    api_secret: str = field(repr=False)
    is_testnet: bool = True

    def is_configured(self) -> bool:
        return bool(self.api_key) and bool(self.api_secret)


@dataclass(frozen=True)
class Balance:
    """Per-coin wallet snapshot, replaced wholesale on each fetch."""
    coin: str
    wallet_balance: Decimal
    available_balance: Decimal
    unrealized_pnl: Decimal


@dataclass(frozen=True)
class Position:
    symbol: str
    side: PositionSide
    size: Decimal
    entry_price: Decimal
    mark_price: Decimal
    leverage: Decimal
    unrealized_pnl: Decimal
    position_value: Decimal


@dataclass(frozen=True)
class OrderHistory:
    order_id: str
    symbol: str
    side: Side
    order_type: OrderType
    qty: Decimal
    price: Decimal
    executed_qty: Decimal
    avg_price: Decimal
    status: OrderStatus
    create_time: datetime
    cum_exec_fee: Decimal = Decimal("0")


@dataclass(frozen=True)
class ClosedPnl:
    """Realized result of a closing fill (/v5/position/closed-pnl)."""
    order_id: str
    symbol: str
    side: Side
    qty: Decimal
    avg_entry_price: Decimal
    avg_exit_price: Decimal
    closed_pnl: Decimal
    created_time: datetime


@dataclass(frozen=True)
class OrderResult:
    order_id: str
    order_link_id: str = ""


@dataclass(frozen=True)
class Ticker:
    symbol: str
    last_price: Decimal
    prev_price_24h: Decimal
    price_24h_pcnt: Decimal
    high_price_24h: Decimal
    low_price_24h: Decimal
    turnover_24h: Decimal
    volume_24h: Decimal


@dataclass(frozen=True)
class Kline:
    """One candle (chart data point); start_time is the candle open time (UTC)."""
    start_time: datetime
    open: Decimal
    high: Decimal
    low: Decimal
    close: Decimal
    volume: Decimal


@dataclass(frozen=True)
class Trade:
    """
    Trade journal entry.
    Created manually by the user or from a filled order; owned by one user.
    """
    id: str
    user_id: str
    symbol: str
    side: Side
    order_type: OrderType
    quantity: Decimal
    price: Decimal
    fee: Decimal
    status: OrderStatus
    created_at: datetime
    updated_at: datetime

    executed_price: Optional[Decimal] = None
    total_amount: Optional[Decimal] = None
    notes: Optional[str] = None
    tags: Tuple[str, ...] = ()
    executed_at: Optional[datetime] = None
    bybit_order_id: Optional[str] = None
    # Closed P&L of the fill; None for an entry that did not close a position
    realized_pnl: Optional[Decimal] = None

    @property
    def amount(self) -> Decimal:
        return self.quantity * self.price


@dataclass(frozen=True)
class TradingReport:
    """Performance statistics over a list of journal trades."""
    total_trades: int
    winning_trades: int
    losing_trades: int
    total_pnl: Decimal
    win_rate: Decimal
    average_win: Decimal
    average_loss: Decimal
    max_consecutive_losses: int
    max_drawdown: Decimal
    start_date: Optional[datetime] = None
    end_date: Optional[datetime] = None
