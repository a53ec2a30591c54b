import json
from datetime import datetime, timezone
from decimal import Decimal

import pytest
import requests

from bybit_trader.core.models import OrderStatus, OrderType, Side, Trade


class FakeResponse:
    def __init__(self, status_code=200, json_data=None, text=None):
        self.status_code = status_code
        if text is None:
            text = json.dumps(json_data) if json_data is not None else ""
        self.text = text
        self.content = text.encode("utf-8")

    def json(self):
        return json.loads(self.text)

    def raise_for_status(self):
        if self.status_code >= 400:
            raise requests.exceptions.HTTPError(f"{self.status_code} Error", response=self)


class FakeSession:
    """Replays canned responses (or raises canned exceptions) and records every call."""

    def __init__(self, responses):
        self.responses = list(responses)
        self.calls = []

    def request(self, method, url, **kwargs):
        self.calls.append({"method": method, "url": url, **kwargs})
        if not self.responses:
            raise AssertionError(f"Unexpected request: {method} {url}")
        item = self.responses.pop(0)
        if isinstance(item, Exception):
            raise item
        return item

    def post(self, url, **kwargs):
        return self.request("POST", url, **kwargs)


@pytest.fixture
def make_session():
    def _make(*responses):
        return FakeSession(responses)
    return _make


@pytest.fixture
def http_response():
    return FakeResponse


@pytest.fixture
def bybit_ok():
    def _ok(result=None, code=0, msg="OK"):
        return FakeResponse(200, {"retCode": code, "retMsg": msg, "result": result if result is not None else {}})
    return _ok


@pytest.fixture
def make_trade():
    def _make(**overrides):
        created = overrides.pop("created_at", datetime(2024, 3, 15, 9, 30, 5, tzinfo=timezone.utc))
        fields = dict(
            id="trade-1",
            user_id="user-1",
            symbol="BTCUSDT",
            side=Side.BUY,
            order_type=OrderType.MARKET,
            quantity=Decimal("0.01"),
            price=Decimal("50000"),
            fee=Decimal("0.5"),
            status=OrderStatus.FILLED,
            created_at=created,
            updated_at=created,
            tags=("scalp",),
        )
        fields.update(overrides)
        return Trade(**fields)
    return _make
