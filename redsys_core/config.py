"""Application configuration via environment variables."""

from pydantic_settings import BaseSettings

REDSYS_ENDPOINTS = {
    "test": {
        "execute": "https://sis-t.redsys.es:25443/sis/rest/trataPeticionREST",
        "pre_authenticate": "https://sis-t.redsys.es:25443/sis/rest/iniciaPeticionREST",
    },
    "production": {
        "execute": "https://sis.redsys.es/sis/rest/trataPeticionREST",
        "pre_authenticate": "https://sis.redsys.es/sis/rest/iniciaPeticionREST",
    },
}

CURRENCY_EUR = "978"  # ISO 4217 numeric
SIGNATURE_VERSION = "HMAC_SHA256_V1"
NOTIFICATION_PATH = "/api/payments/notification"


class Settings(BaseSettings):
    database_url: str = "sqlite+aiosqlite:///./redsys_core.db"
    log_level: str = "INFO"

    redsys_env: str = "test"  # "test" | "production"
    redsys_merchant_code: str = ""  # FUC
    redsys_terminal: str = "1"
    redsys_secret_key: str = ""  # base64 merchant key
    redsys_currency: str = CURRENCY_EUR
    base_url: str = "http://localhost:8000"
    http_timeout_seconds: float = 30.0

    renewal_batch_limit: int = 50
    max_renewal_failures: int = 3
    cron_secret: str = ""

    model_config = {"env_file": ".env", "env_file_encoding": "utf-8"}

    @property
    def endpoints(self) -> dict[str, str]:
        return REDSYS_ENDPOINTS["production" if self.redsys_env == "production" else "test"]

    @property
    def notification_url(self) -> str:
        return f"{self.base_url.rstrip('/')}{NOTIFICATION_PATH}"


settings = Settings()
