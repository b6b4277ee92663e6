"""Application settings using Pydantic for environment-based configuration."""
from enum import Enum
from functools import lru_cache
from typing import Any, Dict, Mapping, Optional

from pydantic import Field, field_validator, model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

TAX_RATE_PREFIX = "ya_kassa_tax_"


class IntegrationMode(str, Enum):
    """Which payment flow the store runs."""

    OFF = "off"
    GATEWAY = "gateway"  # payment API with authorize/capture
    WALLET = "wallet"  # quickpay form into a personal wallet
    DIRECT_TRANSFER = "direct_transfer"  # quickpay transfer form


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    # Integration mode
    integration_mode: IntegrationMode = Field(
        default=IntegrationMode.OFF, description="Active payment integration"
    )
    test_mode: bool = Field(default=False, description="Use demo endpoints")

    # Gateway credentials
    shop_id: str = Field(default="", description="Gateway shop identifier")
    shop_password: str = Field(default="", description="Gateway secret key")
    gateway_base_url: str = Field(
        default="https://payment.yandex.net/api/v3",
        description="Gateway REST API base URL",
    )
    gateway_timeout_seconds: float = Field(
        default=30.0, description="Transport timeout for gateway calls"
    )

    # Wallet / direct transfer
    wallet_account: str = Field(default="", description="Wallet number receiving transfers")
    wallet_password: str = Field(
        default="", description="Shared secret for signed wallet notifications"
    )
    direct_transfer_form_id: str = Field(default="", description="Transfer form identifier")
    direct_transfer_description: str = Field(
        default="", description="Narrative template, %field% placeholders"
    )

    # Checkout behaviour
    allow_method_choice_on_gateway: bool = Field(
        default=False, description="Accept an empty method, buyer picks it on the gateway page"
    )
    send_receipt: bool = Field(default=False, description="Attach fiscal receipts")
    default_tax_rate_id: int = Field(default=1, description="Gateway tax code for unmapped items")
    tax_rates: Dict[str, int] = Field(
        default_factory=dict, description="Local tax category id -> gateway tax code"
    )
    cms_name: str = Field(default="ya_api_joomshopping", description="Reported in metadata")
    module_version: str = Field(default="1.4.0", description="Reported in metadata")

    # Retry policy for create/capture
    retry_max_attempts: int = Field(default=4, ge=1, description="Attempts including the first")
    retry_delay_seconds: float = Field(default=2.0, ge=0, description="Fixed delay between attempts")

    # Order store
    database_url: str = Field(
        default="sqlite+aiosqlite:///./kassa_checkout.db",
        description="Order payment store connection URL",
    )
    database_echo: bool = Field(default=False, description="Echo SQL queries (debug)")

    # Application Configuration
    app_name: str = Field(default="kassa-checkout", description="Application name")
    app_env: str = Field(default="development", description="Environment (development/production)")
    log_level: str = Field(default="INFO", description="Logging level")
    debug_log: bool = Field(default=True, description="Emit debug-level module logs")

    # API Configuration
    api_host: str = Field(default="0.0.0.0", description="API host")
    api_port: int = Field(default=8000, description="API port")

    model_config = SettingsConfigDict(
        env_prefix="KASSA_",
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    @field_validator("log_level")
    @classmethod
    def validate_log_level(cls, v: str) -> str:
        """Validate log level."""
        valid_levels = ["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"]
        if v.upper() not in valid_levels:
            raise ValueError(f"Invalid log level. Must be one of: {valid_levels}")
        return v.upper()

    @field_validator("gateway_base_url")
    @classmethod
    def strip_trailing_slash(cls, v: str) -> str:
        return v.rstrip("/")

    @model_validator(mode="after")
    def validate_credentials(self) -> "Settings":
        """Each mode needs its own credentials before any request is made."""
        if self.integration_mode is IntegrationMode.GATEWAY:
            if not self.shop_id or not self.shop_password:
                raise ValueError("Gateway mode requires shop_id and shop_password")
        elif self.integration_mode is IntegrationMode.WALLET:
            if not self.wallet_password:
                raise ValueError("Wallet mode requires wallet_password")
        return self

    @property
    def is_production(self) -> bool:
        """Check if running in production environment."""
        return self.app_env.lower() == "production"

    @classmethod
    def from_module_config(
        cls, config: Mapping[str, Any], **overrides: Any
    ) -> "Settings":
        """
        Build typed settings from the shop's payment module configuration.

        The shop admin stores the module options as a flat string map
        (``kassamode``, ``moneymode``, ``ya_kassa_tax_<id>`` ...). The mode is
        resolved here once; nothing downstream reads the raw map again.

        Args:
            config: Raw module configuration
            **overrides: Explicit field values taking precedence

        Returns:
            Settings: Resolved settings

        Raises:
            ValidationError: If a value, such as a non-numeric tax rate, is invalid
        """

        def flag(key: str) -> bool:
            return str(config.get(key, "")).strip() == "1"

        values: Dict[str, Any] = {}
        if flag("kassamode"):
            values["integration_mode"] = IntegrationMode.GATEWAY
            values["shop_password"] = str(
                config.get("shoppassword") or config.get("shop_password") or ""
            )
        elif flag("moneymode"):
            values["integration_mode"] = IntegrationMode.WALLET
            values["wallet_password"] = str(config.get("password") or "")
        elif flag("paymentsmode"):
            values["integration_mode"] = IntegrationMode.DIRECT_TRANSFER
        else:
            values["integration_mode"] = IntegrationMode.OFF

        values["shop_id"] = str(config.get("shopid") or config.get("shop_id") or "")
        values["wallet_account"] = str(config.get("account") or "")
        values["test_mode"] = flag("testmode")
        values["allow_method_choice_on_gateway"] = flag("paymode")
        values["send_receipt"] = flag("ya_kassa_send_check") or flag("kassa_send_check")
        values["debug_log"] = flag("debug_log")
        values["direct_transfer_form_id"] = str(config.get("ym_pay_id") or "")
        values["direct_transfer_description"] = str(config.get("ym_pay_desc") or "")

        # raw strings, converted and validated as the tax_rates field
        tax_rates: Dict[str, str] = {}
        for key, value in config.items():
            if key.startswith(TAX_RATE_PREFIX) and str(value).strip():
                tax_rates[key[len(TAX_RATE_PREFIX):]] = str(value).strip()
        values["tax_rates"] = tax_rates

        default_tax_id: Optional[str] = (
            str(config["tax_id"]) if config.get("tax_id") is not None else None
        )
        if default_tax_id is not None and default_tax_id in tax_rates:
            values["default_tax_rate_id"] = tax_rates[default_tax_id]

        values.update(overrides)
        return cls(**values)


@lru_cache()
def get_settings() -> Settings:
    """
    Get cached settings instance.

    Uses lru_cache to ensure settings are only loaded once.
    """
    return Settings()
