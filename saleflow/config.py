import os


def _env_flag(name, default=""):
    return os.environ.get(name, default).lower() in ("1", "true", "yes")


class Config:
    """Base configuration. Shared across all environments."""

    # --- Required ---
    SECRET_KEY = os.environ.get("SECRET_KEY")

    # Handle DATABASE_URL: some PaaS providers (Railway, Heroku) use
    # "postgres://" which SQLAlchemy 1.4+ doesn't accept.
    _db_url = os.environ.get("DATABASE_URL", "")
    if _db_url.startswith("postgres://"):
        _db_url = _db_url.replace("postgres://", "postgresql://", 1)
    SQLALCHEMY_DATABASE_URI = _db_url or None

    STRIPE_SECRET_KEY = os.environ.get("STRIPE_SECRET_KEY")
    STRIPE_WEBHOOK_SECRET = os.environ.get("STRIPE_WEBHOOK_SECRET")
    APP_BASE_URL = os.environ.get("APP_BASE_URL", "http://localhost:5000")

    # --- Promotions ---
    # Kill switch for the paid publish path. The immediate path is unaffected.
    PROMOTIONS_ENABLED = _env_flag("PROMOTIONS_ENABLED", "true")
    # Optional fixed Stripe price; falls back to inline price_data below.
    STRIPE_FEATURED_WEEK_PRICE_ID = os.environ.get("STRIPE_FEATURED_WEEK_PRICE_ID")
    FEATURED_WEEK_AMOUNT_CENTS = int(os.environ.get("FEATURED_WEEK_AMOUNT_CENTS", 299))
    FEATURED_DURATION_DAYS = int(os.environ.get("FEATURED_DURATION_DAYS", 7))

    # --- Listing images ---
    # Comma-separated host allowlist for photo URLs. Empty = any https host.
    ALLOWED_IMAGE_HOSTS = [
        h.strip().lower()
        for h in os.environ.get("ALLOWED_IMAGE_HOSTS", "").split(",")
        if h.strip()
    ]

    # --- Email (SMTP) ---
    MAIL_SMTP_HOST = os.environ.get("MAIL_SMTP_HOST", "smtp.gmail.com")
    MAIL_SMTP_PORT = int(os.environ.get("MAIL_SMTP_PORT", 587))
    MAIL_USERNAME = os.environ.get("MAIL_USERNAME")
    MAIL_PASSWORD = os.environ.get("MAIL_PASSWORD")          # App password
    MAIL_FROM_NAME = os.environ.get("MAIL_FROM_NAME", "Saleflow")
    MAIL_FROM_ADDRESS = os.environ.get("MAIL_FROM_ADDRESS")  # defaults to MAIL_USERNAME

    # --- SQLAlchemy ---
    SQLALCHEMY_TRACK_MODIFICATIONS = False
    SQLALCHEMY_ENGINE_OPTIONS = {
        "pool_pre_ping": True,
        "pool_recycle": 300,
    }

    # --- Session / cookies ---
    SESSION_COOKIE_HTTPONLY = True
    SESSION_COOKIE_SAMESITE = "Lax"
    REMEMBER_COOKIE_HTTPONLY = True
    REMEMBER_COOKIE_SAMESITE = "Lax"

    # --- WTF / CSRF ---
    WTF_CSRF_ENABLED = True

    @staticmethod
    def validate():
        """Fail fast if required env vars are missing."""
        required = [
            "SECRET_KEY",
            "DATABASE_URL",
            "STRIPE_SECRET_KEY",
            "STRIPE_WEBHOOK_SECRET",
            "APP_BASE_URL",
        ]
        missing = [v for v in required if not os.environ.get(v)]
        if missing:
            raise RuntimeError(
                f"Missing required environment variables: {', '.join(missing)}"
            )


class DevConfig(Config):
    """Local development."""

    DEBUG = True
    SESSION_COOKIE_SECURE = False
    REMEMBER_COOKIE_SECURE = False


class TestConfig(Config):
    """Testing — in-memory SQLite, CSRF disabled."""

    TESTING = True
    DEBUG = True
    SECRET_KEY = "test-secret-key-not-for-production"
    SQLALCHEMY_DATABASE_URI = "sqlite:///:memory:"
    STRIPE_SECRET_KEY = "sk_test_fake"
    STRIPE_WEBHOOK_SECRET = "whsec_test_fake"
    STRIPE_FEATURED_WEEK_PRICE_ID = None
    FEATURED_WEEK_AMOUNT_CENTS = 299
    PROMOTIONS_ENABLED = True  # override per-test as needed
    ALLOWED_IMAGE_HOSTS = []
    APP_BASE_URL = "http://localhost:5000"
    MAIL_USERNAME = None  # no SMTP in tests; send paths are patched
    MAIL_PASSWORD = None
    WTF_CSRF_ENABLED = False
    RATELIMIT_ENABLED = False
    SESSION_COOKIE_SECURE = False
    REMEMBER_COOKIE_SECURE = False
    SERVER_NAME = "localhost"

    @staticmethod
    def validate():
        """Skip validation in test mode — everything is hardcoded."""
        pass


class ProdConfig(Config):
    """Production."""

    DEBUG = False
    SESSION_COOKIE_SECURE = True
    REMEMBER_COOKIE_SECURE = True


config_by_name = {
    "development": DevConfig,
    "production": ProdConfig,
    "testing": TestConfig,
}
