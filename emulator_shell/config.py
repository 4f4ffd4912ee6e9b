import os
from functools import lru_cache
from typing import Optional

from dotenv import load_dotenv
from pydantic import BaseModel

# Load .env from current directory so DB_PATH, PORT etc. are picked up automatically.
load_dotenv()


class Settings(BaseModel):
    """Runtime configuration loaded from environment variables."""

    db_path: str = "./data/emulator.db"
    http_host: str = "127.0.0.1"
    http_port: int = 9000
    remote_call_timeout: Optional[float] = None
    protocol_scheme: str = "bfemulator"
    log_level: str = "INFO"

    service_name: str = "emulator-shell"

    @property
    def emulator_url(self) -> str:
        return f"http://localhost:{self.http_port}"


@lru_cache(maxsize=1)
def _base_settings() -> Settings:
    """
    Base settings lookup.

    NOTE: We intentionally *do not* cache environment values that may change
    between tests – `get_settings` below re-creates Settings each time from
    the current environment. This helper only stores defaults.
    """

    return Settings()


def _optional_float(raw: Optional[str]) -> Optional[float]:
    if raw is None or not raw.strip():
        return None
    value = float(raw)
    return value if value > 0 else None


def get_settings() -> Settings:
    """
    Return Settings built from the *current* environment.

    Tests mutate os.environ at runtime via the `env_vars` helper, so we must
    read directly from the environment on each call instead of caching.
    """

    base = _base_settings()
    db_path = os.getenv("DB_PATH") or base.db_path
    http_host = os.getenv("HOST") or base.http_host
    http_port = int(os.getenv("PORT") or base.http_port)
    remote_call_timeout = _optional_float(os.getenv("REMOTE_CALL_TIMEOUT"))
    protocol_scheme = (os.getenv("PROTOCOL_SCHEME") or base.protocol_scheme).lower()
    log_level = (os.getenv("LOG_LEVEL") or base.log_level).upper()

    return Settings(
        db_path=db_path,
        http_host=http_host,
        http_port=http_port,
        remote_call_timeout=remote_call_timeout,
        protocol_scheme=protocol_scheme,
        log_level=log_level,
        service_name=os.getenv("SERVICE_NAME") or base.service_name,
    )
