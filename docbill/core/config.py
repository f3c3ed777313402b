"""Configuration settings for the docbill service.

Wraps environment variables and provides defaults.
"""

from typing import Optional

from pydantic import Field, PostgresDsn, ValidationInfo, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Pydantic settings class.

    Attributes:
    ----------
        PROJECT_NAME (str): The name of the project.
        ENVIRONMENT (str): The deployment environment (local, dev, test, prod).
        LOCAL_DEVELOPMENT (bool): Whether the service runs locally (text logs instead of JSON).
        DEBUG (bool): Whether debug mode is enabled.
        LOG_LEVEL (str): The logging level (DEBUG, INFO, WARNING, ERROR, CRITICAL).
        POSTGRES_HOST (str): The PostgreSQL server hostname.
        POSTGRES_PORT (int): The PostgreSQL server port.
        POSTGRES_DB (str): The PostgreSQL database name.
        POSTGRES_USER (str): The PostgreSQL username.
        POSTGRES_PASSWORD (str): The PostgreSQL password.
        SQLALCHEMY_ASYNC_DATABASE_URI (Optional[str]): The SQLAlchemy async database URI.
        FREE_TRIAL_HASH_SALT (str): Server secret mixed into the caller key hash.
        WEB_BASE_URL (str): Public URL of the web cabinet, used for payer return URLs.
        API_BASE_URL (Optional[str]): Public URL of this API.
        GATEWAY_CALLBACK_URL (Optional[str]): Explicit callback URL given to the gateway.
        GATEWAY_CALLBACK_ALLOWED_IPS (str): Comma separated callback source allow-list.
        GATEWAY_TIMEOUT_SECONDS (float): Upper bound for every gateway HTTP call.
        GATEWAY_CALLBACK_TIMEOUT_SECONDS (float): Bound on the single status query made while
            answering a gateway callback.
        GATEWAY_CURRENCY (str): Checkout currency.
        GATEWAY_LANGUAGE (str): Language of the gateway payment page.
        TBC_TPAY_BASE_URL (str): TBC Checkout API base URL.
        TBC_API_KEY (Optional[str]): TBC developer app key.
        TBC_CLIENT_ID (Optional[str]): TBC merchant client id.
        TBC_CLIENT_SECRET (Optional[str]): TBC merchant client secret.
        ALLOW_MOCK_BILLING (bool): Whether the dev/QA mock activation endpoint is enabled.
        ADMIN_API_TOKEN (Optional[str]): Shared secret for admin endpoints.
        NUMBERING_MAX_ATTEMPTS (int): Document number generation retry budget.
        NUMBERING_RETRY_BACKOFF_SECONDS (float): Pause between numbering attempts.
        PENDING_SWEEP_AGE_MINUTES (int): Age after which unresolved intents are re-queried.
        PENDING_SWEEP_INTERVAL_SECONDS (int): Pause between background sweeps; 0 disables them.
        SUBSCRIPTION_EXTEND_MAX_ATTEMPTS (int): Compare-and-swap budget of a subscription extension.
    """

    model_config = SettingsConfigDict(env_file=".env", extra="ignore")

    PROJECT_NAME: str = "docbill"
    ENVIRONMENT: str = "local"
    LOCAL_DEVELOPMENT: bool = True
    DEBUG: bool = False

    LOG_LEVEL: str = "INFO"

    POSTGRES_HOST: str = "localhost"
    POSTGRES_PORT: int = 5432
    POSTGRES_DB: str = "docbill"
    POSTGRES_USER: str = "docbill"
    POSTGRES_PASSWORD: str = "docbill"
    SQLALCHEMY_ASYNC_DATABASE_URI: Optional[str] = Field(default=None, validate_default=True)

    FREE_TRIAL_HASH_SALT: str = "dev-salt"

    WEB_BASE_URL: str = "http://localhost:3000"
    API_BASE_URL: Optional[str] = None
    GATEWAY_CALLBACK_URL: Optional[str] = None
    GATEWAY_CALLBACK_ALLOWED_IPS: str = ""
    GATEWAY_TIMEOUT_SECONDS: float = 15.0
    GATEWAY_CALLBACK_TIMEOUT_SECONDS: float = 5.0
    GATEWAY_CURRENCY: str = "GEL"
    GATEWAY_LANGUAGE: str = "KA"

    TBC_TPAY_BASE_URL: str = "https://api.tbcbank.ge"
    TBC_API_KEY: Optional[str] = None
    TBC_CLIENT_ID: Optional[str] = None
    TBC_CLIENT_SECRET: Optional[str] = None

    ALLOW_MOCK_BILLING: bool = False
    ADMIN_API_TOKEN: Optional[str] = None

    NUMBERING_MAX_ATTEMPTS: int = 5
    NUMBERING_RETRY_BACKOFF_SECONDS: float = 0.0

    PENDING_SWEEP_AGE_MINUTES: int = 15
    PENDING_SWEEP_INTERVAL_SECONDS: int = 300

    SUBSCRIPTION_EXTEND_MAX_ATTEMPTS: int = 5

    @field_validator("SQLALCHEMY_ASYNC_DATABASE_URI", mode="before")
    def assemble_db_connection(cls, v: Optional[str], info: ValidationInfo) -> str:
        """Build the SQLAlchemy database URI.

        Args:
        ----
            v (Optional[str]): The value of the SQLALCHEMY_ASYNC_DATABASE_URI setting.
            info (ValidationInfo): The validation context containing all field values.

        Returns:
        -------
            str: The SQLAlchemy URI.

        """
        if isinstance(v, str) and v:
            return v

        return str(
            PostgresDsn.build(
                scheme="postgresql+asyncpg",
                username=info.data.get("POSTGRES_USER"),
                password=info.data.get("POSTGRES_PASSWORD"),
                host=info.data.get("POSTGRES_HOST"),
                port=info.data.get("POSTGRES_PORT"),
                path=f"{info.data.get('POSTGRES_DB') or ''}",
            )
        )

    @property
    def callback_allowed_ips(self) -> list[str]:
        """Parsed callback allow-list; empty means every source is accepted."""
        return [ip.strip() for ip in self.GATEWAY_CALLBACK_ALLOWED_IPS.split(",") if ip.strip()]

    @property
    def gateway_callback_url(self) -> str:
        """Callback URL handed to the gateway when a payment is created."""
        if self.GATEWAY_CALLBACK_URL:
            return self.GATEWAY_CALLBACK_URL
        if self.API_BASE_URL:
            return self.API_BASE_URL.rstrip("/") + "/billing/tbc/callback"
        return "http://localhost:8001/billing/tbc/callback"


settings = Settings()
