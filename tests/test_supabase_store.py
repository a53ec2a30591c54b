from datetime import datetime, timezone
from decimal import Decimal

import pytest
import requests

from bybit_trader.core.exceptions import ConfigurationError, PersistenceError, ValidationError
from bybit_trader.core.models import OrderStatus, OrderType, Side
from bybit_trader.infrastructure.supabase.client import AuthSession, SupabaseAuth, SupabaseTradeStore
from bybit_trader.infrastructure.supabase.mapper import TradeRowMapper, parse_timestamp

URL = "https://example.supabase.co"
AUTH = AuthSession(access_token="jwt-token", user_id="user-1")


def row(**overrides):
    data = {
        "id": "t-1",
        "user_id": "user-1",
        "symbol": "BTCUSDT",
        "side": "buy",
        "order_type": "limit",
        "quantity": 0.01,
        "price": "50000.00000000",
        "executed_price": None,
        "total_amount": "500",
        "fee": 0.5,
        "status": "filled",
        "bybit_order_id": None,
        "notes": "breakout",
        "tags": ["scalp", "btc"],
        "created_at": "2024-03-15T09:30:05.12345+00:00",
        "executed_at": None,
        "updated_at": "2024-03-15T09:30:05Z",
    }
    data.update(overrides)
    return data


def make_store(session):
    return SupabaseTradeStore(URL, "anon-key", AUTH, session=session)


def test_parse_timestamp_variants():
    assert parse_timestamp("2024-03-15T09:30:05Z") == datetime(2024, 3, 15, 9, 30, 5, tzinfo=timezone.utc)
    assert parse_timestamp("2024-03-15T09:30:05.12345+00:00").microsecond == 123450
    assert parse_timestamp("2024-03-15 09:30:05").tzinfo == timezone.utc
    assert parse_timestamp(None) is None


def test_from_row_maps_columns():
    trade = TradeRowMapper.from_row(row())

    assert trade.side is Side.BUY
    assert trade.order_type is OrderType.LIMIT
    assert trade.status is OrderStatus.FILLED
    assert trade.quantity == Decimal("0.01")
    assert trade.price == Decimal("50000")
    assert trade.total_amount == Decimal("500")
    assert trade.executed_price is None
    assert trade.tags == ("scalp", "btc")
    assert trade.realized_pnl is None


def test_realized_pnl_column(make_trade):
    trade = make_trade(realized_pnl=Decimal("-42.5"))

    stored = TradeRowMapper.to_row(trade)

    assert stored["realized_pnl"] == "-42.5"
    assert TradeRowMapper.from_row(stored).realized_pnl == Decimal("-42.5")


def test_from_row_rejects_unknown_side():
    with pytest.raises(PersistenceError):
        TradeRowMapper.from_row(row(side="long"))


def test_get_trades_query(make_session, http_response):
    session = make_session(http_response(200, [row(), row(id="t-0")]))
    store = make_store(session)

    trades = store.get_trades(limit=2)

    assert [t.id for t in trades] == ["t-1", "t-0"]
    call = session.calls[0]
    assert call["method"] == "GET"
    assert call["url"] == f"{URL}/rest/v1/trades"
    assert ("order", "created_at.desc") in call["params"]
    assert ("limit", 2) in call["params"]
    assert ("user_id", "eq.user-1") in call["params"]
    assert call["headers"]["Authorization"] == "Bearer jwt-token"
    assert call["headers"]["apikey"] == "anon-key"


def test_get_trades_rejects_non_positive_limit(make_session):
    with pytest.raises(ValidationError):
        make_store(make_session()).get_trades(limit=0)


def test_save_trade_forces_owner_and_lets_db_assign_id(make_session, http_response, make_trade):
    session = make_session(http_response(201, [row(id="generated")]))
    store = make_store(session)

    saved = store.save_trade(make_trade(id="", user_id="someone-else"))

    payload = session.calls[0]["json"]
    assert "id" not in payload
    assert payload["user_id"] == "user-1"
    assert payload["quantity"] == "0.01"
    assert session.calls[0]["headers"]["Prefer"] == "return=representation"
    assert saved.id == "generated"


def test_update_trade_patches_by_id(make_session, http_response, make_trade):
    session = make_session(http_response(200, [row(notes="edited")]))
    store = make_store(session)

    updated = store.update_trade(make_trade(id="t-1", notes="edited"))

    call = session.calls[0]
    assert call["method"] == "PATCH"
    assert call["params"] == {"id": "eq.t-1"}
    assert "id" not in call["json"] and "user_id" not in call["json"]
    assert updated.notes == "edited"


def test_update_missing_trade_raises(make_session, http_response, make_trade):
    store = make_store(make_session(http_response(200, [])))

    with pytest.raises(PersistenceError):
        store.update_trade(make_trade())


def test_delete_trade(make_session, http_response):
    session = make_session(http_response(204))
    make_store(session).delete_trade("t-1")

    assert session.calls[0]["method"] == "DELETE"
    assert session.calls[0]["params"] == {"id": "eq.t-1"}


def test_http_failure_is_persistence_error(make_session, http_response):
    store = make_store(make_session(http_response(403, {"message": "permission denied"})))

    with pytest.raises(PersistenceError):
        store.get_trades()


def test_connection_failure_is_persistence_error(make_session):
    store = make_store(make_session(requests.exceptions.ConnectionError("down")))

    with pytest.raises(PersistenceError):
        store.get_trades()


def test_get_trades_between_sends_range(make_session, http_response):
    session = make_session(http_response(200, []))
    start = datetime(2024, 3, 1, tzinfo=timezone.utc)
    end = datetime(2024, 3, 31, tzinfo=timezone.utc)

    assert make_store(session).get_trades_between(start, end) == []
    params = session.calls[0]["params"]
    assert ("created_at", "gte.2024-03-01T00:00:00+00:00") in params
    assert ("created_at", "lte.2024-03-31T00:00:00+00:00") in params


def test_sign_in(make_session, http_response):
    session = make_session(http_response(200, {"access_token": "jwt", "user": {"id": "u-9"}}))

    auth = SupabaseAuth(URL, "anon-key", session=session).sign_in("a@b.c", "pw")

    assert auth == AuthSession(access_token="jwt", user_id="u-9")
    assert session.calls[0]["params"] == {"grant_type": "password"}


def test_sign_in_failure(make_session, http_response):
    auth = SupabaseAuth(URL, "anon-key", session=make_session(http_response(400, {"error": "invalid_grant"})))

    with pytest.raises(PersistenceError):
        auth.sign_in("a@b.c", "wrong")


def test_store_requires_configuration():
    with pytest.raises(ConfigurationError):
        SupabaseTradeStore("", "anon-key", AUTH)
