"""Configuration loader for the support relay with validation."""
import os
from dataclasses import dataclass, field
from typing import Optional

from dotenv import load_dotenv

load_dotenv()

DEFAULT_ALLOWED_ORIGINS = ["http://localhost:3000", "http://localhost:5173"]


@dataclass
class Config:
    """
    Relay configuration from environment variables.

    All settings are validated on load to fail fast if misconfigured.
    """

    # Telegram Bot
    bot_token: str

    # Staff chat: receives widget relays and stock alerts; only replies posted here are correlated
    admin_chat_id: Optional[int] = None

    # Storefront
    website_url: str = "https://example.com"
    allowed_origins: list[str] = field(default_factory=lambda: list(DEFAULT_ALLOWED_ORIGINS))

    # Webhook (for production)
    webhook_path: str = "/webhook"
    webhook_url: str = ""
    webhook_secret: str = ""

    # Admin HTTP API
    admin_api_token: str = ""

    # Bot behaviour
    products_page_size: int = 5
    abandoned_cart_minutes: int = 60
    low_stock_threshold: int = 5
    session_idle_minutes: int = 120

    # Sweeps
    sweep_send_delay_ms: int = 200
    sweep_interval_seconds: int = 900  # 0 disables the in-process scheduler

    def __post_init__(self):
        """Validate configuration after initialization."""
        if self.products_page_size < 1:
            raise ValueError("PRODUCTS_PAGE_SIZE must be at least 1")

        if self.abandoned_cart_minutes < 1:
            raise ValueError("ABANDONED_CART_MINUTES must be at least 1")

        if self.low_stock_threshold < 1:
            raise ValueError("LOW_STOCK_THRESHOLD must be at least 1")

        if self.sweep_send_delay_ms < 0:
            raise ValueError("SWEEP_SEND_DELAY_MS must not be negative")

        if self.sweep_interval_seconds < 0:
            raise ValueError("SWEEP_INTERVAL_SECONDS must not be negative")

        if self.session_idle_minutes < 5:
            raise ValueError("SESSION_IDLE_MINUTES must be at least 5")

        if not self.webhook_path.startswith("/"):
            raise ValueError("WEBHOOK_PATH must start with '/'")

    @classmethod
    def from_env(cls) -> "Config":
        """
        Load configuration from environment variables.

        Raises:
            RuntimeError: If required environment variables are missing
            ValueError: If configuration values are invalid
        """
        bot_token = os.getenv("BOT_TOKEN")
        if not bot_token:
            raise RuntimeError("BOT_TOKEN environment variable is required")

        raw_chat_id = (os.getenv("TELEGRAM_CHAT_ID") or "").strip()
        admin_chat_id = None
        if raw_chat_id:
            try:
                admin_chat_id = int(raw_chat_id)
            except ValueError as e:
                raise ValueError("TELEGRAM_CHAT_ID must be an integer chat id") from e

        raw_origins = os.getenv("ALLOWED_ORIGINS", "")
        origins = [o.strip() for o in raw_origins.split(",") if o.strip()] or list(DEFAULT_ALLOWED_ORIGINS)

        return cls(
            bot_token=bot_token,
            admin_chat_id=admin_chat_id,
            website_url=os.getenv("WEBSITE_URL", "https://example.com").rstrip("/"),
            allowed_origins=origins,
            webhook_path=os.getenv("WEBHOOK_PATH", "/webhook"),
            webhook_url=os.getenv("WEBHOOK_URL", ""),
            webhook_secret=os.getenv("WEBHOOK_SECRET", ""),
            admin_api_token=os.getenv("ADMIN_API_TOKEN", ""),
            products_page_size=int(os.getenv("PRODUCTS_PAGE_SIZE", "5")),
            abandoned_cart_minutes=int(os.getenv("ABANDONED_CART_MINUTES", "60")),
            low_stock_threshold=int(os.getenv("LOW_STOCK_THRESHOLD", "5")),
            session_idle_minutes=int(os.getenv("SESSION_IDLE_MINUTES", "120")),
            sweep_send_delay_ms=int(os.getenv("SWEEP_SEND_DELAY_MS", "200")),
            sweep_interval_seconds=int(os.getenv("SWEEP_INTERVAL_SECONDS", "900")),
        )

    @property
    def sweep_send_delay(self) -> float:
        """Delay between sequential sweep sends, in seconds."""
        return self.sweep_send_delay_ms / 1000.0

    @property
    def is_production(self) -> bool:
        """Check if running in production mode."""
        return bool(self.webhook_url)
