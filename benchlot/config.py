import os


def _env_flag(name, default=""):
    return os.environ.get(name, default).lower() in ("1", "true", "yes")


class Config:
    """Base configuration. Shared across all environments."""

    # --- Required ---
    SECRET_KEY = os.environ.get("SECRET_KEY")

    # Supabase (and Heroku-style hosts) hand out "postgres://" URLs, which
    # SQLAlchemy 1.4+ doesn't accept.
    _db_url = os.environ.get("DATABASE_URL", "")
    if _db_url.startswith("postgres://"):
        _db_url = _db_url.replace("postgres://", "postgresql://", 1)
    SQLALCHEMY_DATABASE_URI = _db_url or None

    STRIPE_SECRET_KEY = os.environ.get("STRIPE_SECRET_KEY")
    STRIPE_WEBHOOK_SECRET = os.environ.get("STRIPE_WEBHOOK_SECRET")
    STRIPE_PUBLISHABLE_KEY = os.environ.get("STRIPE_PUBLISHABLE_KEY")
    FRONTEND_URL = os.environ.get("FRONTEND_URL")

    # --- Marketplace economics ---
    # Platform fee in basis points: 500 = 5% of each seller's share.
    PLATFORM_FEE_BPS = int(os.environ.get("PLATFORM_FEE_BPS", 500))
    CURRENCY = os.environ.get("CURRENCY", "usd")

    # --- Seller onboarding ---
    ONBOARDING_TOKEN_TTL_MINUTES = int(
        os.environ.get("ONBOARDING_TOKEN_TTL_MINUTES", 60)
    )
    # Local accounts without Connect enabled get mock_acct_* ids. Never in prod.
    ALLOW_MOCK_CONNECT_ACCOUNTS = False

    # --- Email (SMTP) ---
    MAIL_ENABLED = _env_flag("MAIL_ENABLED", "true")
    MAIL_SMTP_HOST = os.environ.get("MAIL_SMTP_HOST", "smtp.sendgrid.net")
    MAIL_SMTP_PORT = int(os.environ.get("MAIL_SMTP_PORT", 587))
    MAIL_USERNAME = os.environ.get("MAIL_USERNAME")
    MAIL_PASSWORD = os.environ.get("MAIL_PASSWORD")
    MAIL_FROM_NAME = os.environ.get("MAIL_FROM_NAME", "Benchlot")
    MAIL_FROM_ADDRESS = os.environ.get(
        "MAIL_FROM_ADDRESS", "notifications@benchlot.com"
    )

    # --- SQLAlchemy ---
    SQLALCHEMY_TRACK_MODIFICATIONS = False
    SQLALCHEMY_ENGINE_OPTIONS = {
        "pool_pre_ping": True,
        "pool_recycle": 300,
    }

    # --- Rate limiting ---
    RATELIMIT_ENABLED = True

    REQUIRED_KEYS = (
        "SECRET_KEY",
        "DATABASE_URL",
        "STRIPE_SECRET_KEY",
        "STRIPE_WEBHOOK_SECRET",
        "FRONTEND_URL",
    )

    @classmethod
    def validate(cls):
        """Fail fast if required env vars are missing."""
        missing = [v for v in cls.REQUIRED_KEYS if not os.environ.get(v)]
        if missing:
            raise RuntimeError(
                f"Missing required environment variables: {', '.join(missing)}"
            )
        if not 0 <= cls.PLATFORM_FEE_BPS <= 10000:
            raise RuntimeError(
                f"PLATFORM_FEE_BPS must be between 0 and 10000, got {cls.PLATFORM_FEE_BPS}"
            )


class DevConfig(Config):
    """Local development."""

    DEBUG = True
    ALLOW_MOCK_CONNECT_ACCOUNTS = _env_flag("ALLOW_MOCK_CONNECT_ACCOUNTS", "true")


class TestConfig(Config):
    """Testing — in-memory SQLite, no outbound email."""

    TESTING = True
    DEBUG = True
    SECRET_KEY = "test-secret-key-not-for-production"
    SQLALCHEMY_DATABASE_URI = "sqlite:///:memory:"
    SQLALCHEMY_ENGINE_OPTIONS = {}
    STRIPE_SECRET_KEY = "sk_test_fake"
    STRIPE_WEBHOOK_SECRET = "whsec_test_fake"
    STRIPE_PUBLISHABLE_KEY = "pk_test_fake"
    FRONTEND_URL = "http://localhost:3000"
    PLATFORM_FEE_BPS = 500
    CURRENCY = "usd"
    ALLOW_MOCK_CONNECT_ACCOUNTS = False
    MAIL_ENABLED = False
    RATELIMIT_ENABLED = False

    @classmethod
    def validate(cls):
        """Skip validation in test mode — everything is hardcoded."""
        pass


class ProdConfig(Config):
    """Production."""

    DEBUG = False
    ALLOW_MOCK_CONNECT_ACCOUNTS = False


config_by_name = {
    "development": DevConfig,
    "production": ProdConfig,
    "testing": TestConfig,
}
