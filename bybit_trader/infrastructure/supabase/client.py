from dataclasses import dataclass, replace
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional, Sequence, Tuple, Union

import requests

from bybit_trader.config.logging import logger
from bybit_trader.core.exceptions import ConfigurationError, PersistenceError, ValidationError
from bybit_trader.core.models import Trade
from .mapper import TradeRowMapper, format_timestamp

Params = Union[Dict[str, Any], Sequence[Tuple[str, Any]]]


@dataclass(frozen=True)
class AuthSession:
    access_token: str
    user_id: str


def _raise_for_response(response: requests.Response, action: str) -> None:
    try:
        response.raise_for_status()
    except requests.exceptions.HTTPError as e:
        raise PersistenceError(f"Supabase {action} failed: {e} Response: {response.text}") from e


class SupabaseAuth:
    """Email/password sign-in against Supabase GoTrue."""

    def __init__(self, url: str, anon_key: str, session: Optional[requests.Session] = None, timeout: float = 30.0):
        if not url or not anon_key:
            raise ConfigurationError("SUPABASE_URL and SUPABASE_ANON_KEY must be set")
        self.url = url.rstrip("/")
        self.anon_key = anon_key
        self.session = session or requests.Session()
        self.timeout = timeout

    def sign_in(self, email: str, password: str) -> AuthSession:
        if not email or not password:
            raise ConfigurationError("SUPABASE_EMAIL and SUPABASE_PASSWORD must be set")
        try:
            response = self.session.post(
                f"{self.url}/auth/v1/token",
                params={"grant_type": "password"},
                headers={"apikey": self.anon_key, "Content-Type": "application/json"},
                json={"email": email, "password": password},
                timeout=self.timeout,
            )
        except requests.exceptions.RequestException as e:
            raise PersistenceError(f"Failed to connect to Supabase: {e}") from e

        _raise_for_response(response, "sign-in")
        try:
            data = response.json()
            session = AuthSession(access_token=data["access_token"], user_id=data["user"]["id"])
        except (ValueError, KeyError, TypeError) as e:
            raise PersistenceError(f"Unexpected Supabase sign-in response: {e}") from e
        logger.info("Signed in to Supabase.")
        return session


class SupabaseTradeStore:
    """
    Trade journal persisted in the Supabase `trades` table through PostgREST.
    Row level policies restrict every read and write to the signed-in user.
    """

    TABLE = "trades"

    def __init__(
        self,
        url: str,
        anon_key: str,
        auth: AuthSession,
        session: Optional[requests.Session] = None,
        timeout: float = 30.0,
    ):
        if not url or not anon_key:
            raise ConfigurationError("SUPABASE_URL and SUPABASE_ANON_KEY must be set")
        self.url = url.rstrip("/")
        self.anon_key = anon_key
        self.auth = auth
        self.session = session or requests.Session()
        self.timeout = timeout

    @property
    def user_id(self) -> str:
        return self.auth.user_id

    def _request(
        self,
        method: str,
        action: str,
        params: Optional[Params] = None,
        payload: Any = None,
        prefer: Optional[str] = None,
    ) -> Any:
        headers = {
            "apikey": self.anon_key,
            "Authorization": f"Bearer {self.auth.access_token}",
            "Content-Type": "application/json",
        }
        if prefer:
            headers["Prefer"] = prefer

        try:
            response = self.session.request(
                method,
                f"{self.url}/rest/v1/{self.TABLE}",
                params=params,
                json=payload,
                headers=headers,
                timeout=self.timeout,
            )
        except requests.exceptions.RequestException as e:
            logger.error(f"Supabase {action} failed: {e}")
            raise PersistenceError(f"Failed to connect to Supabase: {e}") from e

        _raise_for_response(response, action)
        if not response.content:
            return None
        try:
            return response.json()
        except ValueError as e:
            raise PersistenceError(f"Failed to decode Supabase response for {action}") from e

    def _rows(self, data: Any) -> List[Trade]:
        return [TradeRowMapper.from_row(row) for row in data or []]

    def save_trade(self, trade: Trade) -> Trade:
        """Inserts a trade attributed to the signed-in user and returns the stored row."""
        owned = replace(trade, user_id=self.user_id)
        row = TradeRowMapper.to_row(owned)
        # Let the database generate ids for new rows
        if not row["id"]:
            del row["id"]
        data = self._request("POST", "save", payload=row, prefer="return=representation")
        saved = self._rows(data)
        logger.info(f"Saved trade {trade.symbol} {trade.side.value} to the journal.")
        return saved[0] if saved else owned

    def get_trades(self, user_id: Optional[str] = None, limit: int = 100, offset: int = 0) -> List[Trade]:
        """Most recent first, at most ``limit`` rows."""
        if limit < 1:
            raise ValidationError(f"limit must be positive, got {limit}")
        params = [
            ("select", "*"),
            ("user_id", f"eq.{user_id or self.user_id}"),
            ("order", "created_at.desc"),
            ("limit", limit),
            ("offset", offset),
        ]
        return self._rows(self._request("GET", "query", params=params))

    def get_trades_between(self, start: datetime, end: datetime, user_id: Optional[str] = None) -> List[Trade]:
        params = [
            ("select", "*"),
            ("user_id", f"eq.{user_id or self.user_id}"),
            ("created_at", f"gte.{format_timestamp(start)}"),
            ("created_at", f"lte.{format_timestamp(end)}"),
            ("order", "created_at.desc"),
        ]
        return self._rows(self._request("GET", "query", params=params))

    def find_by_bybit_order_id(self, order_id: str) -> Optional[Trade]:
        params = [
            ("select", "*"),
            ("user_id", f"eq.{self.user_id}"),
            ("bybit_order_id", f"eq.{order_id}"),
            ("limit", 1),
        ]
        rows = self._rows(self._request("GET", "query", params=params))
        return rows[0] if rows else None

    def update_trade(self, trade: Trade) -> Trade:
        if not trade.id:
            raise ValidationError("Cannot update a trade without an id")
        updated = replace(trade, updated_at=datetime.now(timezone.utc))
        row = TradeRowMapper.to_row(updated)
        for column in ("id", "user_id", "created_at"):
            row.pop(column, None)

        data = self._request(
            "PATCH", "update", params={"id": f"eq.{trade.id}"}, payload=row, prefer="return=representation"
        )
        rows = self._rows(data)
        if not rows:
            raise PersistenceError(f"Trade {trade.id} not found")
        logger.info(f"Updated trade {trade.id}.")
        return rows[0]

    def delete_trade(self, trade_id: str) -> None:
        if not trade_id:
            raise ValidationError("trade_id is required")
        self._request("DELETE", "delete", params={"id": f"eq.{trade_id}"})
        logger.info(f"Deleted trade {trade_id}.")
