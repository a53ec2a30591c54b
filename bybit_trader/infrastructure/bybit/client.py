import json
import time
import uuid
from decimal import Decimal, InvalidOperation
from typing import Any, Callable, Dict, List, Optional, Union

import requests

from bybit_trader.config.logging import logger
from bybit_trader.core.exceptions import (
    ConfigurationError,
    ExchangeError,
    NetworkError,
    ValidationError,
)
from bybit_trader.core.models import (
    Balance,
    ClosedPnl,
    Credential,
    Kline,
    KlineInterval,
    OrderHistory,
    OrderResult,
    OrderType,
    Position,
    PositionSide,
    Side,
    Ticker,
    TimeInForce,
)
from .mapper import BybitMapper
from .signer import build_auth_headers, canonical_query

MAINNET_URL = "https://api.bybit.com"
TESTNET_URL = "https://api-testnet.bybit.com"

Number = Union[str, int, float, Decimal]


def _positive_decimal(value: Optional[Number], field: str) -> Decimal:
    """Parses user-supplied quantity/price text; rejects empty, non-numeric and <= 0."""
    if value is None or str(value).strip() == "":
        raise ValidationError(f"{field} is required")
    try:
        parsed = Decimal(str(value).strip())
    except (InvalidOperation, ValueError):
        raise ValidationError(f"{field} must be numeric, got {value!r}")
    if not parsed.is_finite() or parsed <= 0:
        raise ValidationError(f"{field} must be positive, got {value!r}")
    return parsed


def _wire_number(value: Decimal) -> str:
    return format(value, "f")


class BybitClient:
    """
    Bybit V5 REST client.
    Signs requests, retries transient failures and hands payloads to BybitMapper.
    No order state is cached: callers re-fetch to observe the effect of a mutation.
    """

    def __init__(
        self,
        credential: Credential,
        session: Optional[requests.Session] = None,
        *,
        timeout: float = 10.0,
        max_retries: int = 3,
        retry_delay: float = 1.0,
        recv_window: int = 5000,
        category: str = "linear",
        clock: Callable[[], float] = time.time,
        sleep: Callable[[float], None] = time.sleep,
    ):
        if max_retries < 1:
            raise ConfigurationError("max_retries must be at least 1")
        self.credential = credential
        self.base_url = TESTNET_URL if credential.is_testnet else MAINNET_URL
        self.session = session or requests.Session()
        self.timeout = timeout
        self.max_retries = max_retries
        self.retry_delay = retry_delay
        self.recv_window = str(recv_window)
        self.category = category
        self._clock = clock
        self._sleep = sleep

    @classmethod
    def from_settings(cls, settings, session: Optional[requests.Session] = None) -> "BybitClient":
        return cls(
            settings.credential(),
            session=session,
            timeout=settings.BYBIT_TIMEOUT_SECONDS,
            max_retries=settings.BYBIT_MAX_RETRIES,
            retry_delay=settings.BYBIT_RETRY_DELAY_SECONDS,
            recv_window=settings.BYBIT_RECV_WINDOW,
        )

    def _timestamp(self) -> str:
        return str(int(self._clock() * 1000))

    def _request(
        self,
        method: str,
        endpoint: str,
        params: Optional[Dict[str, Any]] = None,
        body: Optional[Dict[str, Any]] = None,
        auth: bool = True,
    ) -> Dict[str, Any]:
        method = method.upper()
        url = f"{self.base_url}{endpoint}"

        # The signed payload must be byte-identical to what goes on the wire
        data = None
        if method == "GET":
            payload = canonical_query(params)
            if payload:
                url += f"?{payload}"
        else:
            data = json.dumps(body or {}, separators=(",", ":"))
            payload = data

        last_exc: Optional[Exception] = None
        last_reason = ""
        for attempt in range(1, self.max_retries + 1):
            headers = {"Content-Type": "application/json"}
            if auth:
                headers.update(build_auth_headers(
                    self.credential.api_key,
                    self.credential.api_secret,
                    self._timestamp(),
                    self.recv_window,
                    payload,
                ))

            try:
                response = self.session.request(
                    method, url, headers=headers, data=data, timeout=self.timeout
                )
            except (requests.exceptions.Timeout, requests.exceptions.ConnectionError) as e:
                last_exc = e
                last_reason = str(e)
            except requests.exceptions.RequestException as e:
                logger.error(f"Bybit request error on {endpoint}: {e}")
                raise NetworkError(f"Failed to send request to Bybit: {e}") from e
            else:
                if response.status_code >= 500:
                    last_exc = None
                    last_reason = f"HTTP {response.status_code}"
                else:
                    return self._parse(response, endpoint)

            if attempt < self.max_retries:
                logger.warning(
                    f"Bybit {method} {endpoint} failed ({last_reason}), "
                    f"retrying in {self.retry_delay}s (attempt {attempt}/{self.max_retries})"
                )
                self._sleep(self.retry_delay)

        logger.error(f"Bybit {method} {endpoint} failed after {self.max_retries} attempts: {last_reason}")
        raise NetworkError(
            f"Failed to connect to Bybit after {self.max_retries} attempts: {last_reason}"
        ) from last_exc

    @staticmethod
    def _parse(response: requests.Response, endpoint: str) -> Dict[str, Any]:
        if response.status_code in (401, 403):
            raise ConfigurationError(
                f"Bybit rejected the API credentials (HTTP {response.status_code})"
            )
        if response.status_code >= 400:
            raise NetworkError(
                f"Bybit returned HTTP {response.status_code} for {endpoint}",
                status_code=response.status_code,
            )
        try:
            data = response.json()
        except ValueError as e:
            raise NetworkError(f"Failed to decode JSON response from {endpoint}") from e

        code = data.get("retCode") if isinstance(data, dict) else None
        if code != 0:
            message = data.get("retMsg", "") if isinstance(data, dict) else ""
            raise ExchangeError(code if isinstance(code, int) else -1, message or "Malformed response")
        return data

    @staticmethod
    def _result(data: Dict[str, Any]) -> Dict[str, Any]:
        return data.get("result") or {}

    # ------------------------------------------------------------------
    # Account
    # ------------------------------------------------------------------
    def fetch_balance(self, account_type: str = "UNIFIED") -> List[Balance]:
        """Wallet balance per coin; an empty account yields an empty list."""
        data = self._request("GET", "/v5/account/wallet-balance", {"accountType": account_type})
        return BybitMapper.to_balances(self._result(data))

    def fetch_positions(self, settle_coin: str = "USDT", symbol: Optional[str] = None) -> List[Position]:
        params = {"category": self.category, "settleCoin": settle_coin, "symbol": symbol}
        data = self._request("GET", "/v5/position/list", params)
        positions = []
        for raw in self._result(data).get("list") or []:
            position = BybitMapper.to_position(raw)
            if position is not None and position.size != 0:
                positions.append(position)
        return positions

    def fetch_order_history(self, symbol: Optional[str] = None, limit: int = 50) -> List[OrderHistory]:
        if limit < 1:
            raise ValidationError(f"limit must be positive, got {limit}")
        params = {"category": self.category, "limit": limit, "symbol": symbol}
        data = self._request("GET", "/v5/order/history", params)
        return [BybitMapper.to_order_history(o) for o in self._result(data).get("list") or []]

    def fetch_closed_pnl(self, symbol: Optional[str] = None, limit: int = 50) -> List[ClosedPnl]:
        """Realized P&L of recent closing fills, newest first."""
        if limit < 1:
            raise ValidationError(f"limit must be positive, got {limit}")
        params = {"category": self.category, "limit": limit, "symbol": symbol}
        data = self._request("GET", "/v5/position/closed-pnl", params)
        return [BybitMapper.to_closed_pnl(r) for r in self._result(data).get("list") or []]

    # ------------------------------------------------------------------
    # Market data (public, unsigned)
    # ------------------------------------------------------------------
    def fetch_ticker(self, symbol: str) -> Optional[Ticker]:
        if not symbol:
            raise ValidationError("symbol is required")
        params = {"category": self.category, "symbol": symbol}
        data = self._request("GET", "/v5/market/tickers", params, auth=False)
        tickers = self._result(data).get("list") or []
        return BybitMapper.to_ticker(tickers[0]) if tickers else None

    def fetch_klines(
        self,
        symbol: str,
        interval: KlineInterval = KlineInterval.M1,
        limit: int = 200,
    ) -> List[Kline]:
        """Candles oldest first."""
        if not symbol:
            raise ValidationError("symbol is required")
        params = {
            "category": self.category,
            "symbol": symbol,
            "interval": interval.value,
            "limit": limit,
        }
        data = self._request("GET", "/v5/market/kline", params, auth=False)
        klines = [BybitMapper.to_kline(row) for row in self._result(data).get("list") or []]
        return sorted(klines, key=lambda k: k.start_time)

    # ------------------------------------------------------------------
    # Trading
    # ------------------------------------------------------------------
    def place_order(
        self,
        symbol: str,
        side: Side,
        order_type: OrderType,
        qty: Number,
        price: Optional[Number] = None,
        time_in_force: TimeInForce = TimeInForce.GTC,
        reduce_only: bool = False,
        order_link_id: Optional[str] = None,
    ) -> OrderResult:
        """
        Submits an order. Input is validated before anything is signed or sent.
        The orderLinkId is fixed across retries so the exchange rejects a duplicate.
        """
        if not symbol:
            raise ValidationError("symbol is required")
        quantity = _positive_decimal(qty, "quantity")
        wire_type = BybitMapper.to_wire_order_type(order_type)

        body: Dict[str, Any] = {
            "category": self.category,
            "symbol": symbol,
            "side": BybitMapper.to_wire_side(side),
            "orderType": wire_type,
            "qty": _wire_number(quantity),
            "timeInForce": time_in_force.value,
            "orderLinkId": order_link_id or uuid.uuid4().hex,
        }
        if order_type is OrderType.LIMIT:
            body["price"] = _wire_number(_positive_decimal(price, "price"))
        if reduce_only:
            body["reduceOnly"] = True

        logger.info(
            f"Placing {body['side']} {wire_type} order: {symbol} qty={body['qty']}"
            + (f" price={body['price']}" if "price" in body else "")
        )
        data = self._request("POST", "/v5/order/create", body=body)
        result = BybitMapper.to_order_result(self._result(data))
        logger.info(f"Order accepted: {result.order_id}")
        return result

    def cancel_order(self, symbol: str, order_id: str) -> OrderResult:
        if not symbol:
            raise ValidationError("symbol is required")
        if not order_id:
            raise ValidationError("order_id is required")
        body = {"category": self.category, "symbol": symbol, "orderId": order_id}
        data = self._request("POST", "/v5/order/cancel", body=body)
        logger.info(f"Order cancelled: {order_id}")
        return BybitMapper.to_order_result(self._result(data))

    def close_position(self, symbol: str, side: Union[PositionSide, Side], qty: Number) -> OrderResult:
        """
        Closes (part of) a position with a reduce-only market IOC order on the opposite side.
        ``side`` is the side of the position being closed.
        """
        if isinstance(side, PositionSide):
            closing_side = side.closing_side()
        else:
            closing_side = side.opposite()
        return self.place_order(
            symbol,
            closing_side,
            OrderType.MARKET,
            qty,
            time_in_force=TimeInForce.IOC,
            reduce_only=True,
        )
