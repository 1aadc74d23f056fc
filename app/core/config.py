"""
PharaohVault Backend — Configuration
Standalone settings with Stripe dual-mode (test/live) toggle.
Business bounds for investments, premiums and withdrawals live here
so every rule reads from one place.
"""
from pydantic_settings import BaseSettings


class Settings(BaseSettings):
    # ── Application ──────────────────────────────────────────────────────
    APP_NAME: str = "PharaohVault"
    APP_VERSION: str = "1.0.0"
    ENVIRONMENT: str = "development"
    DEBUG: bool = False
    CORS_ORIGINS: str = "http://localhost:3000,http://localhost:5173"
    SITE_URL: str = "http://localhost:5173"

    # ── Database ─────────────────────────────────────────────────────────
    DATABASE_URL: str = "postgresql+asyncpg://pharaohvault:changeme@db:5432/pharaohvault"

    # ── Auth / JWT session cookie ────────────────────────────────────────
    SECRET_KEY: str = "change-me-in-production-use-openssl-rand-hex-32"
    ALGORITHM: str = "HS256"
    ACCESS_TOKEN_EXPIRE_MINUTES: int = 1440  # 24 hours
    SESSION_COOKIE_NAME: str = "pv_session"
    SESSION_COOKIE_SECURE: bool = False

    # ── Stripe Dual-Mode Billing ─────────────────────────────────────────
    STRIPE_MODE: str = "test"  # "test" or "live"
    CHECKOUT_UI_MODE: str = "embedded"  # "embedded" or "hosted"

    # Test mode keys
    STRIPE_TEST_SECRET_KEY: str = ""
    STRIPE_TEST_PUBLISHABLE_KEY: str = ""
    STRIPE_TEST_WEBHOOK_SECRET: str = ""

    # Live mode keys
    STRIPE_LIVE_SECRET_KEY: str = ""
    STRIPE_LIVE_PUBLISHABLE_KEY: str = ""
    STRIPE_LIVE_WEBHOOK_SECRET: str = ""

    # Legacy single-mode keys (backward compat)
    STRIPE_SECRET_KEY: str = ""
    STRIPE_PUBLISHABLE_KEY: str = ""
    STRIPE_WEBHOOK_SECRET: str = ""

    # ── Metal quote API ──────────────────────────────────────────────────
    GOLD_API_KEY: str = ""
    GOLD_API_URL: str = "https://www.goldapi.io/api/XAU,XAG/USD"
    GOLD_API_TIMEOUT_SECONDS: int = 10

    # ── Investment bounds (USD) ──────────────────────────────────────────
    MIN_MONTHLY_INVESTMENT: int = 10
    MAX_MONTHLY_INVESTMENT: int = 1000
    # The checkout function historically only required a whole dollar.
    CHECKOUT_MIN_INVESTMENT: int = 1

    # ── Pricing ──────────────────────────────────────────────────────────
    GOLD_PREMIUM: float = 1.26
    SILVER_PREMIUM: float = 1.15

    # ── Withdrawals ──────────────────────────────────────────────────────
    GOLD_MIN_WITHDRAWAL_GRAMS: float = 1.0
    SILVER_MIN_WITHDRAWAL_OUNCES: float = 3.5

    # ── Reconciliation ───────────────────────────────────────────────────
    PENDING_SUBSCRIPTION_MAX_AGE_HOURS: int = 24
    ORDER_POLL_INTERVAL_SECONDS: float = 2.0
    ORDER_POLL_MAX_ATTEMPTS: int = 10

    # ── Stripe Helper Properties ─────────────────────────────────────────
    @property
    def active_stripe_secret_key(self) -> str:
        if self.STRIPE_MODE == "live":
            return self.STRIPE_LIVE_SECRET_KEY or self.STRIPE_SECRET_KEY
        return self.STRIPE_TEST_SECRET_KEY or self.STRIPE_SECRET_KEY

    @property
    def active_stripe_publishable_key(self) -> str:
        if self.STRIPE_MODE == "live":
            return self.STRIPE_LIVE_PUBLISHABLE_KEY or self.STRIPE_PUBLISHABLE_KEY
        return self.STRIPE_TEST_PUBLISHABLE_KEY or self.STRIPE_PUBLISHABLE_KEY

    @property
    def active_stripe_webhook_secret(self) -> str:
        if self.STRIPE_MODE == "live":
            return self.STRIPE_LIVE_WEBHOOK_SECRET or self.STRIPE_WEBHOOK_SECRET
        return self.STRIPE_TEST_WEBHOOK_SECRET or self.STRIPE_WEBHOOK_SECRET

    class Config:
        env_file = ".env"
        case_sensitive = True


settings = Settings()
