from typing import Optional


class AppError(Exception):
    """Base class for all application errors"""
    pass


class ConfigurationError(AppError):
    """Bad or missing configuration (e.g. empty API secret)"""
    pass


class NetworkError(AppError):
    """Transport failure: timeout, connectivity, HTTP 5xx"""

    def __init__(self, message: str, status_code: Optional[int] = None):
        super().__init__(message)
        self.status_code = status_code


class ExchangeError(AppError):
    """Non-zero retCode returned by the exchange"""

    def __init__(self, code: int, message: str):
        super().__init__(f"Bybit API Error: {message} (Code: {code})")
        self.code = code
        self.message = message


class ValidationError(AppError):
    """Malformed user input (e.g. non-numeric quantity or price)"""
    pass


class PersistenceError(AppError):
    """Trade journal read/write failure"""
    pass
