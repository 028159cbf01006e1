# eventflow/core/config.py
import os
from urllib.parse import quote_plus

from dotenv import load_dotenv

DEV_CORS_ORIGINS = ["http://localhost:5173", "http://127.0.0.1:5173"]


def str_to_bool(value: str | None, default: bool = False) -> bool:
    if value is None:
        return default
    return value.strip().lower() in {"1", "true", "yes", "on"}


def parse_csv(value: str | None) -> list[str]:
    if not value:
        return []
    return [v.strip() for v in value.split(",") if v.strip()]


def merge_unique(items: list[str]) -> list[str]:
    return list(dict.fromkeys(items))


def _env(name: str, default: str = "") -> str:
    return os.getenv(name, default).strip()


def _env_int(name: str, default: int) -> int:
    raw = _env(name)
    return int(raw) if raw else default


def _env_bool(name: str, default: bool) -> bool:
    return str_to_bool(os.getenv(name), default=default)


class Settings:
    """
    Process-wide configuration read from the environment once at import.

    Tests mutate attributes in place; anything that must observe a change reads
    ``settings.X`` at call time rather than copying it at import.
    """

    def __init__(self) -> None:
        # .env is a local convenience only; prod gets real env vars.
        self.ENV = _env("ENV", "dev").lower()
        if self.ENV != "prod":
            load_dotenv()

        self.LOG_LEVEL = _env("LOG_LEVEL", "INFO").upper()

        self._load_database()
        self._load_cors()
        self._load_auth()
        self._load_verification()
        self._load_email()
        self._load_uploads()

        self._validate_prod()

    # ----------------------------
    # Sections
    # ----------------------------
    def _load_database(self) -> None:
        # A full DATABASE_URL (sqlite locally, managed URLs in hosting) wins over DB_* parts.
        self.DATABASE_URL = _env("DATABASE_URL")
        self.DB_HOST = _env("DB_HOST")
        self.DB_PORT = _env("DB_PORT", "5432")
        self.DB_NAME = _env("DB_NAME")
        self.DB_APP_USER = _env("DB_APP_USER")
        self.DB_APP_PASSWORD = os.getenv("DB_APP_PASSWORD", "")
        self.DB_MIGRATOR_USER = _env("DB_MIGRATOR_USER")
        self.DB_MIGRATOR_PASSWORD = os.getenv("DB_MIGRATOR_PASSWORD", "")
        self.DB_SSLMODE = _env("DB_SSLMODE", "require").lower()

        # Every wait on the database is bounded so a stuck lock surfaces as a transient error.
        self.DB_CONNECT_TIMEOUT_SECONDS = _env_int("DB_CONNECT_TIMEOUT_SECONDS", 5)
        self.DB_POOL_TIMEOUT_SECONDS = _env_int("DB_POOL_TIMEOUT_SECONDS", 10)
        self.DB_STATEMENT_TIMEOUT_MS = _env_int("DB_STATEMENT_TIMEOUT_MS", 5000)
        self.DB_LOCK_TIMEOUT_MS = _env_int("DB_LOCK_TIMEOUT_MS", 3000)

    def _load_cors(self) -> None:
        origins = parse_csv(os.getenv("CORS_ORIGINS"))
        if self.ENV != "prod":
            origins += DEV_CORS_ORIGINS
        self.CORS_ORIGINS = merge_unique(origins)

    def _load_auth(self) -> None:
        self.JWT_SECRET = os.getenv("JWT_SECRET", "")
        # Falls back to JWT_SECRET when unset (see refresh_secret).
        self.REFRESH_TOKEN_SECRET = os.getenv("REFRESH_TOKEN_SECRET", "")
        self.JWT_ALGORITHM = _env("JWT_ALGORITHM", "HS256")
        self.ACCESS_TOKEN_EXPIRE_MINUTES = _env_int("ACCESS_TOKEN_EXPIRE_MINUTES", 15)
        self.REFRESH_TOKEN_EXPIRE_DAYS = _env_int("REFRESH_TOKEN_EXPIRE_DAYS", 7)

        self.REFRESH_COOKIE_NAME = _env("REFRESH_COOKIE_NAME", "refreshToken")
        self.REFRESH_COOKIE_SAMESITE = _env("REFRESH_COOKIE_SAMESITE", "strict").lower()
        self.REFRESH_COOKIE_PATH = _env("REFRESH_COOKIE_PATH", "/")

        self.PASSWORD_MIN_LENGTH = _env_int("PASSWORD_MIN_LENGTH", 8)
        self.ENABLE_RATE_LIMITING = _env_bool("ENABLE_RATE_LIMITING", False)

    def _load_verification(self) -> None:
        self.VERIFICATION_CODE_TTL_SECONDS = _env_int("VERIFICATION_CODE_TTL_SECONDS", 300)
        # false = /signup and /update-password trust client-side gating (legacy behaviour).
        self.REQUIRE_VERIFIED_EMAIL = _env_bool("REQUIRE_VERIFIED_EMAIL", True)

    def _load_email(self) -> None:
        self.EMAIL_ENABLED = _env_bool("EMAIL_ENABLED", False)
        self.EMAIL_PROVIDER = _env("EMAIL_PROVIDER", "resend").lower()  # resend | ses | smtp
        self.EMAIL_FROM_NAME = _env("EMAIL_FROM_NAME", "EventFlow")
        self.FROM_EMAIL = _env("FROM_EMAIL")

        self.RESEND_API_KEY = _env("RESEND_API_KEY")
        self.AWS_REGION = _env("AWS_REGION")

        self.SMTP_HOST = _env("SMTP_HOST")
        self.SMTP_PORT = _env_int("SMTP_PORT", 587)
        self.SMTP_USERNAME = _env("SMTP_USERNAME")
        self.SMTP_PASSWORD = os.getenv("SMTP_PASSWORD", "")
        self.SMTP_FROM_EMAIL = _env("SMTP_FROM_EMAIL")
        self.SMTP_USE_TLS = _env_bool("SMTP_USE_TLS", True)
        self.SMTP_USE_SSL = _env_bool("SMTP_USE_SSL", False)
        self.SMTP_TIMEOUT_SECONDS = _env_int("SMTP_TIMEOUT_SECONDS", 10)

    def _load_uploads(self) -> None:
        self.UPLOAD_DIR = _env("UPLOAD_DIR") or "uploads"
        self.MAX_UPLOAD_BYTES = _env_int("MAX_UPLOAD_BYTES", 5 * 1024 * 1024)

    # ----------------------------
    # Prod guard rails
    # ----------------------------
    def _validate_prod(self) -> None:
        if self.ENV != "prod":
            return

        required = ["JWT_SECRET", "REFRESH_TOKEN_SECRET"]
        if not self.DATABASE_URL:
            required += ["DB_HOST", "DB_NAME", "DB_APP_USER", "DB_APP_PASSWORD"]
            if self.DB_SSLMODE != "require":
                raise RuntimeError("DB_SSLMODE must be 'require' in prod")
        missing = [name for name in required if not getattr(self, name)]
        if not self.CORS_ORIGINS:
            missing.append("CORS_ORIGINS")

        if any("localhost" in o or "127.0.0.1" in o for o in self.CORS_ORIGINS):
            raise RuntimeError("CORS_ORIGINS contains localhost/dev origins in prod")
        if self.REFRESH_COOKIE_SAMESITE == "none":
            raise RuntimeError("REFRESH_COOKIE_SAMESITE=none is not allowed in prod")
        if missing:
            raise RuntimeError(f"Missing required prod env vars: {', '.join(missing)}")

    # ----------------------------
    # Derived values
    # ----------------------------
    @property
    def is_prod(self) -> bool:
        return self.ENV == "prod"

    @property
    def refresh_secret(self) -> str:
        return self.REFRESH_TOKEN_SECRET or self.JWT_SECRET

    def _postgres_url(self, user: str, password: str) -> str:
        return (
            f"postgresql+psycopg2://{user}:{quote_plus(password)}"
            f"@{self.DB_HOST}:{self.DB_PORT}/{self.DB_NAME}?sslmode={self.DB_SSLMODE}"
        )

    @property
    def database_url(self) -> str:
        return self.DATABASE_URL or self._postgres_url(self.DB_APP_USER, self.DB_APP_PASSWORD)

    @property
    def migrations_database_url(self) -> str:
        """Schema changes run as the migrator role; the app role has DML only."""
        return self.DATABASE_URL or self._postgres_url(self.DB_MIGRATOR_USER, self.DB_MIGRATOR_PASSWORD)


settings = Settings()


def require_jwt_secret() -> None:
    if not settings.JWT_SECRET:
        raise RuntimeError("JWT_SECRET must be set")
