"""
Bybit V5 request signing.

The signature is HMAC-SHA256 over ``timestamp + api_key + recv_window + payload``
keyed by the API secret, hex encoded. ``payload`` is the canonical query string
for GET requests and the raw JSON body for POST requests.
"""
import hashlib
import hmac
from typing import Any, Dict, Mapping, Optional, Union

from bybit_trader.core.exceptions import ConfigurationError

SIGN_TYPE_HMAC_SHA256 = "2"


def canonical_query(params: Optional[Mapping[str, Any]]) -> str:
    """Query string with keys in sorted order; None values are dropped."""
    if not params:
        return ""
    return "&".join([f"{k}={v}" for k, v in sorted(params.items()) if v is not None])


def sign(
    secret: str,
    api_key: str,
    timestamp: Union[int, str],
    recv_window: Union[int, str],
    payload: str,
) -> str:
    if not secret:
        raise ConfigurationError("BYBIT_API_SECRET is not set")
    if not api_key:
        raise ConfigurationError("BYBIT_API_KEY is not set")

    param_str = str(timestamp) + api_key + str(recv_window) + payload
    hash = hmac.new(
        bytes(secret, "utf-8"),
        param_str.encode("utf-8"),
        hashlib.sha256
    )
    return hash.hexdigest()


def build_auth_headers(
    api_key: str,
    secret: str,
    timestamp: Union[int, str],
    recv_window: Union[int, str],
    payload: str,
) -> Dict[str, str]:
    signature = sign(secret, api_key, timestamp, recv_window, payload)
    return {
        "X-BAPI-API-KEY": api_key,
        # V5 wire names are X-BAPI-SIGN / X-BAPI-SIGN-TYPE, not X-BAPI-SIGNATURE
        "X-BAPI-SIGN": signature,
        "X-BAPI-SIGN-TYPE": SIGN_TYPE_HMAC_SHA256,
        "X-BAPI-TIMESTAMP": str(timestamp),
        "X-BAPI-RECV-WINDOW": str(recv_window),
    }
