from typing import Optional

from pydantic import Field
from pydantic import ValidationError as PydanticValidationError
from pydantic_settings import BaseSettings

from bybit_trader.core.exceptions import ConfigurationError
from bybit_trader.core.models import Credential


class Settings(BaseSettings):
    """
    Application settings.
    Read from environment variables (.env) and validated on load.
    The instance is frozen: clients receive the values they need at construction.
    """
    # Bybit
    BYBIT_API_KEY: str = ""
    BYBIT_API_SECRET: str = Field(default="", repr=False)
    BYBIT_TESTNET: bool = True  # testnet unless explicitly disabled
    BYBIT_RECV_WINDOW: int = 5000
    BYBIT_TIMEOUT_SECONDS: float = 10.0
    BYBIT_MAX_RETRIES: int = 3
    BYBIT_RETRY_DELAY_SECONDS: float = 1.0

    # Supabase (trade journal)
    SUPABASE_URL: Optional[str] = None
    SUPABASE_ANON_KEY: Optional[str] = None
    SUPABASE_EMAIL: Optional[str] = None
    SUPABASE_PASSWORD: Optional[str] = Field(default=None, repr=False)
    SUPABASE_TIMEOUT_SECONDS: float = 30.0

    # Export
    EXPORT_DIR: str = "exports"

    LOG_LEVEL: str = "INFO"

    class Config:
        env_file = ".env"
        env_file_encoding = "utf-8"
        case_sensitive = True
        frozen = True
        extra = "ignore"

    def credential(self) -> Credential:
        return Credential(
            api_key=self.BYBIT_API_KEY,
            api_secret=self.BYBIT_API_SECRET,
            is_testnet=self.BYBIT_TESTNET,
        )

    def require_supabase(self) -> None:
        missing = [
            name for name in ("SUPABASE_URL", "SUPABASE_ANON_KEY")
            if not getattr(self, name)
        ]
        if missing:
            raise ConfigurationError(f"Missing Supabase settings: {', '.join(missing)}")


def load_settings(**overrides) -> Settings:
    """Build a Settings instance, turning validation failures into ConfigurationError."""
    try:
        return Settings(**overrides)
    except PydanticValidationError as e:
        raise ConfigurationError(f"Invalid configuration: {e}") from e
