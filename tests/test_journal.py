from datetime import datetime, timezone
from decimal import Decimal

import pytest

from bybit_trader.core.exceptions import ValidationError
from bybit_trader.core.models import OrderStatus, OrderType, Side
from bybit_trader.services.journal import Period, build_manual_trade, collect_tags, filter_trades

NOW = datetime(2024, 5, 15, 12, 0, tzinfo=timezone.utc)  # a Wednesday


@pytest.mark.parametrize("period, expected", [
    (Period.DAY, datetime(2024, 5, 15, tzinfo=timezone.utc)),
    (Period.WEEK, datetime(2024, 5, 13, tzinfo=timezone.utc)),
    (Period.MONTH, datetime(2024, 5, 1, tzinfo=timezone.utc)),
    (Period.QUARTER, datetime(2024, 4, 1, tzinfo=timezone.utc)),
    (Period.YEAR, datetime(2024, 1, 1, tzinfo=timezone.utc)),
    (Period.ALL, None),
])
def test_period_start(period, expected):
    assert period.start(NOW) == expected


def test_filter_by_period(make_trade):
    old = make_trade(id="old", created_at=datetime(2024, 4, 30, tzinfo=timezone.utc))
    recent = make_trade(id="recent", created_at=datetime(2024, 5, 14, tzinfo=timezone.utc))

    assert [t.id for t in filter_trades([old, recent], Period.MONTH, now=NOW)] == ["recent"]
    assert len(filter_trades([old, recent], Period.ALL, now=NOW)) == 2


def test_filter_search_is_case_insensitive(make_trade):
    trades = [
        make_trade(id="sym", symbol="ETHUSDT", tags=()),
        make_trade(id="note", symbol="BTCUSDT", notes="Followed the ETH lead", tags=()),
        make_trade(id="tag", symbol="SOLUSDT", tags=("eth-correlated",)),
        make_trade(id="none", symbol="XRPUSDT", tags=()),
    ]

    assert [t.id for t in filter_trades(trades, search="eth", now=NOW)] == ["sym", "note", "tag"]


def test_filter_by_tags_any_match(make_trade):
    trades = [
        make_trade(id="a", tags=("scalp",)),
        make_trade(id="b", tags=("swing", "news")),
        make_trade(id="c", tags=()),
    ]

    assert [t.id for t in filter_trades(trades, tags=["news", "scalp"], now=NOW)] == ["a", "b"]


def test_filter_explicit_range(make_trade):
    trades = [
        make_trade(id="before", created_at=datetime(2024, 3, 1, tzinfo=timezone.utc)),
        make_trade(id="inside", created_at=datetime(2024, 3, 10, tzinfo=timezone.utc)),
    ]
    start = datetime(2024, 3, 5, tzinfo=timezone.utc)
    end = datetime(2024, 3, 31, tzinfo=timezone.utc)

    assert [t.id for t in filter_trades(trades, start=start, end=end, now=NOW)] == ["inside"]


def test_collect_tags(make_trade):
    trades = [make_trade(tags=("b", "a")), make_trade(tags=("a", "c"))]

    assert collect_tags(trades) == ["a", "b", "c"]


def test_build_manual_trade():
    trade = build_manual_trade(
        "user-1", " btcusdt ", Side.SELL, OrderType.LIMIT, "0.5", "60000",
        fee="1.2", notes="  take profit ", tags=["swing", " "], now=NOW,
    )

    assert trade.symbol == "BTCUSDT"
    assert trade.quantity == Decimal("0.5")
    assert trade.total_amount == Decimal("30000.0")
    assert trade.fee == Decimal("1.2")
    assert trade.status is OrderStatus.FILLED
    assert trade.notes == "take profit"
    assert trade.tags == ("swing",)
    assert trade.id
    assert trade.realized_pnl is None


@pytest.mark.parametrize("quantity, price, fee", [
    ("", "100", "0"),
    ("abc", "100", "0"),
    ("1", "0", "0"),
    ("1", "100", "-1"),
    ("1", "1e", "0"),
])
def test_build_manual_trade_validation(quantity, price, fee):
    with pytest.raises(ValidationError):
        build_manual_trade("user-1", "BTCUSDT", Side.BUY, OrderType.MARKET, quantity, price, fee=fee)


def test_build_manual_trade_with_realized_pnl():
    trade = build_manual_trade(
        "user-1", "BTCUSDT", Side.SELL, OrderType.MARKET, "1", "40000", realized_pnl="-10000", now=NOW,
    )

    assert trade.realized_pnl == Decimal("-10000")


def test_build_manual_trade_rejects_bad_pnl():
    with pytest.raises(ValidationError):
        build_manual_trade("user-1", "BTCUSDT", Side.BUY, OrderType.MARKET, "1", "100", realized_pnl="lots")


def test_tag_with_separator_is_rejected():
    with pytest.raises(ValidationError):
        build_manual_trade("user-1", "BTCUSDT", Side.BUY, OrderType.MARKET, "1", "100", tags=["news; fomo"])
