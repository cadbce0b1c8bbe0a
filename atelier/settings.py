# ==== APPLICATION SETTINGS CONFIGURATION ==== #

"""
Application settings configuration for Atelier fulfillment.

This module provides centralized configuration management using Pydantic Settings
with environment variable loading for the commerce platform, carrier, messaging
and notification adapters as well as the periodic reconciliation jobs.
"""

from pydantic_settings import BaseSettings, SettingsConfigDict


# ==== MAIN SETTINGS CLASS ==== #


class Settings(BaseSettings):
    """
    Application settings loaded from environment variables.

    Every external collaborator is optional at load time so that the jobs,
    the CLI and the tests can be started with only the adapters they use.
    """

    model_config = SettingsConfigDict(
        env_file='.env',
        env_file_encoding='utf-8',
        case_sensitive=True,
        extra='ignore'
    )

    # --► CORE APPLICATION SETTINGS
    APP_ENV: str = "dev"
    SERVICE_NAME: str = "atelier-fulfillment"
    LOG_LEVEL: str = "INFO"
    LOG_TO_FILES: bool = False
    BUSINESS_TIMEZONE: str = "Africa/Cairo"

    # --► SHOPIFY (ORDER STORE) CONFIGURATION
    SHOPIFY_SHOP_URL: str = "https://example.myshopify.com"
    SHOPIFY_ACCESS_TOKEN: str | None = None
    SHOPIFY_API_VERSION: str = "2024-01"
    SHOPIFY_PAGE_SIZE: int = 250
    SHOPIFY_PHONE_LOOKUP_LIMIT: int = 20
    SHOPIFY_TIMEOUT_SECONDS: float = 30.0

    # --► CARRIER (MYLERZ) CONFIGURATION
    CARRIER_API_URL: str = "https://integration.mylerz.net"
    CARRIER_USERNAME: str | None = None
    CARRIER_PASSWORD: str | None = None
    CARRIER_MERCHANT_ID: int | None = None
    CARRIER_MEMBER_ID: int | None = None
    CARRIER_PAGE_SIZE: int = 500
    CARRIER_TABS: list[int] = [1, 2, 3]
    CARRIER_LOOKBACK_DAYS: int = 7
    CARRIER_LEGACY_MATCHING_ENABLED: bool = True
    CARRIER_TIMEOUT_SECONDS: float = 30.0

    # --► WHATSAPP CLOUD API CONFIGURATION
    WHATSAPP_API_URL: str = "https://graph.facebook.com/v18.0"
    WHATSAPP_PHONE_NUMBER_ID: str | None = None
    WHATSAPP_ACCESS_TOKEN: str | None = None
    WHATSAPP_VERIFY_TOKEN: str | None = None
    WHATSAPP_ORDER_READY_TEMPLATE: str = "order_ready"
    WHATSAPP_TEMPLATE_LANGUAGE: str = "en"
    CONFIRMATION_BUTTON_TEXT: str = "Yes, I'll be available"

    # --► DISCORD NOTIFICATIONS
    DISCORD_WEBHOOK_URL: str | None = None
    DISCORD_TIMEOUT_SECONDS: float = 10.0

    # --► ESCALATION THRESHOLDS
    ESCALATION_HOLD_AFTER_DAYS: int = 2
    ESCALATION_CANCEL_AFTER_DAYS: int = 2

    # --► JOB SCHEDULING (PREFECT)
    JOB_MAX_CONCURRENCY: int = 5
    ESCALATION_CRON: str = "0 */6 * * *"
    CARRIER_RECONCILIATION_CRON: str = "*/30 * * * *"

    # --► PENDING CONFIRMATION STORE
    PENDING_CONFIRMATION_BACKEND: str = "memory"  # memory|redis
    PENDING_CONFIRMATION_TTL_SECONDS: int = 7 * 24 * 3600
    REDIS_URL: str | None = None

    # --► OBSERVABILITY CONFIGURATION
    OTEL_EXPORTER_OTLP_ENDPOINT: str | None = None
    OTEL_EXPORTER_OTLP_HEADERS: str | None = None
    OTEL_SERVICE_NAME: str | None = None
    OTEL_RESOURCE_ATTRIBUTES: str | None = None
    PROMETHEUS_SCRAPE_PATH: str = "/metrics"


# ==== GLOBAL SETTINGS INSTANCE ==== #


# Global settings instance for application-wide access
settings = Settings()


def get_settings() -> Settings:
    """
    Get global settings instance.

    Returns:
        Settings: Global application settings instance
    """
    return settings
