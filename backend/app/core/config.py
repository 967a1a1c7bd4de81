from decimal import Decimal
from functools import lru_cache

from pydantic import BaseModel
from pydantic_settings import BaseSettings, SettingsConfigDict


class ServerGroupSettings(BaseModel):
    """A game server cluster and the login database it keeps accounts in."""

    name: str
    database_url: str


class Settings(BaseSettings):
    """Application settings loaded from environment variables or a .env file."""

    model_config = SettingsConfigDict(env_file=".env", env_file_encoding="utf-8", case_sensitive=False)

    app_name: str = "Flux Control Panel"
    app_version: str = "0.1.0"
    environment: str = "local"
    log_json: bool = False

    secret_key: str = "dev-secret-key"
    jwt_algorithm: str = "HS256"
    session_exp_minutes: int = 120
    secure_cookies: bool = False
    site_origin: str = "http://localhost:8000"

    server_groups: list[ServerGroupSettings] = [
        ServerGroupSettings(name="FluxRO", database_url="sqlite+aiosqlite:///./flux_ragnarok.db"),
    ]

    paypal_ipn_host: str = "www.paypal.com"
    paypal_verify_timeout_seconds: float = 20
    paypal_business_email: str = "admin@localhost"
    paypal_receiver_emails: list[str] = []
    paypal_log_path: str = "logs/paypal.log"
    paypal_duplicate_txn_policy: str = "allow"

    donation_enabled: bool = True
    donation_currency: str = "USD"
    donation_min_amount: Decimal = Decimal("2.00")
    credit_exchange_rate: Decimal = Decimal("1.0")
    transaction_log_dir: str = "logs/transactions"

    use_clean_urls: bool = False
    base_uri: str = "/"
    default_module: str = "main"
    default_action: str = "index"
    theme: str = "default"

    # module -> action -> minimum account level; "*" is the module-wide fallback, -1 allows guests.
    access_levels: dict[str, dict[str, int]] = {
        "main": {"*": -1},
        "account": {"login": -1, "logout": 0, "view": 0},
        "donate": {"index": 0},
        "unauthorized": {"*": -1},
    }
    access_default_level: int = 99
    use_md5_passwords: bool = False


@lru_cache
def get_settings() -> Settings:
    return Settings()


settings = get_settings()
