## gold_ledger/core/config.py

from decimal import Decimal
from typing import Optional

from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """
    Settings for the application
    """

    model_config = SettingsConfigDict(
        env_file=".env", extra="ignore", case_sensitive=False
    )

    environment: str = "development"
    allowed_cors_urls: str = "*"

    database_url: Optional[str] = None
    db_host: str = "localhost"
    db_user: str = "gold_ledger"
    db_password: str = ""
    db_database: str = "gold_ledger"
    db_port: int = 3306

    auto_create_schema: bool = False

    receivable_rate: Decimal = Decimal("0.35")
    amount_tolerance: Decimal = Decimal("0.01")
    recent_ledger_entries_limit: int = 10

    conflict_retry_attempts: int = 3
    conflict_retry_backoff_seconds: float = 0.05

    receivable_correlative_prefix: str = "CVM/GGP/GPM"
    payment_nomenclature_prefix: str = "CVM-GGP-GPM"

    log_level: str = "INFO"
    log_json: bool = False
    log_file: Optional[str] = None

    @property
    def async_db_url(self) -> str:
        """
        Async database URL
        """
        if self.database_url:
            return self.database_url
        return f"mysql+asyncmy://{self.db_user}:{self.db_password}@{self.db_host}:{self.db_port}/{self.db_database}"


settings = Settings()
