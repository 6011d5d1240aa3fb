"""
Configuration module for the ScoutReel backend.
Centralizes all environment variables and settings.

Usage:
    from scoutreel.config import config

    if config.IS_DEV:
        print("Running in development mode")

    interval = config.POLL_INTERVAL_SECONDS
"""

import os
from typing import List
from dataclasses import dataclass, field
from dotenv import load_dotenv

# Load .env file (won't override existing env vars)
load_dotenv()


def _get_env(key: str, default: str = "") -> str:
    """Safely get and strip an environment variable."""
    return os.getenv(key, default).strip()


def _get_env_bool(key: str, default: bool = False) -> bool:
    """Get an environment variable as boolean."""
    val = _get_env(key, "").lower()
    if val in ("true", "1", "yes", "on"):
        return True
    if val in ("false", "0", "no", "off"):
        return False
    return default


def _get_env_int(key: str, default: int = 0) -> int:
    """Get an environment variable as integer."""
    try:
        return int(_get_env(key, str(default)))
    except ValueError:
        return default


def _get_env_float(key: str, default: float = 0.0) -> float:
    """Get an environment variable as float."""
    try:
        return float(_get_env(key, str(default)))
    except ValueError:
        return default


def _get_env_list(key: str, default: List[str] = None) -> List[str]:
    """Get a comma-separated environment variable as list."""
    val = _get_env(key, "")
    if not val:
        return default or []
    return [item.strip() for item in val.split(",") if item.strip()]


def _fix_database_url(url: str) -> str:
    """
    Hosted Postgres providers hand out 'postgres://' URLs,
    psycopg3 requires 'postgresql://'.
    """
    if url and url.startswith("postgres://"):
        return url.replace("postgres://", "postgresql://", 1)
    return url


@dataclass
class Config:
    """
    Application configuration with all settings.
    Loaded from environment variables with sensible defaults.
    """

    # ─────────────────────────────────────────────────────────────
    # Environment
    # ─────────────────────────────────────────────────────────────
    FLASK_ENV: str = field(default_factory=lambda: _get_env("FLASK_ENV", "production").lower())

    @property
    def IS_DEV(self) -> bool:
        """True if running in development mode."""
        return self.FLASK_ENV in ("development", "dev", "local")

    @property
    def IS_PROD(self) -> bool:
        """True if running in production mode."""
        return not self.IS_DEV

    # ─────────────────────────────────────────────────────────────
    # Server
    # ─────────────────────────────────────────────────────────────
    PORT: int = field(default_factory=lambda: _get_env_int("PORT", 5001))
    HOST: str = field(default_factory=lambda: _get_env("HOST", "0.0.0.0"))

    # ─────────────────────────────────────────────────────────────
    # Database / Ledger store
    # ─────────────────────────────────────────────────────────────
    _DATABASE_URL_RAW: str = field(default_factory=lambda: _get_env("DATABASE_URL"))

    @property
    def DATABASE_URL(self) -> str:
        """Database connection URL (fixed for psycopg3 compatibility)."""
        return _fix_database_url(self._DATABASE_URL_RAW)

    @property
    def HAS_DATABASE(self) -> bool:
        """True if database URL is configured."""
        return bool(self._DATABASE_URL_RAW)

    APP_SCHEMA: str = field(default_factory=lambda: _get_env("APP_SCHEMA", "scoutreel"))
    DB_CONNECT_TIMEOUT: int = field(default_factory=lambda: _get_env_int("DB_CONNECT_TIMEOUT", 10))

    # "postgres", "memory" or "" (auto: postgres when DATABASE_URL is set,
    # memory in dev mode, otherwise not configured)
    LEDGER_STORE: str = field(default_factory=lambda: _get_env("LEDGER_STORE").lower())

    # ─────────────────────────────────────────────────────────────
    # Auth (externally issued identity tokens)
    # ─────────────────────────────────────────────────────────────
    AUTH_JWT_SECRET: str = field(default_factory=lambda: _get_env("AUTH_JWT_SECRET"))
    _AUTH_JWT_PUBLIC_KEY_RAW: str = field(default_factory=lambda: _get_env("AUTH_JWT_PUBLIC_KEY"))
    AUTH_JWT_AUDIENCE: str = field(default_factory=lambda: _get_env("AUTH_JWT_AUDIENCE"))
    AUTH_JWT_ISSUER: str = field(default_factory=lambda: _get_env("AUTH_JWT_ISSUER"))
    AUTH_JWT_LEEWAY_SECONDS: int = field(default_factory=lambda: _get_env_int("AUTH_JWT_LEEWAY_SECONDS", 30))

    @property
    def AUTH_JWT_PUBLIC_KEY(self) -> str:
        """PEM public key; env vars usually carry escaped newlines."""
        return self._AUTH_JWT_PUBLIC_KEY_RAW.replace("\\n", "\n")

    @property
    def AUTH_CONFIGURED(self) -> bool:
        return bool(self.AUTH_JWT_SECRET or self._AUTH_JWT_PUBLIC_KEY_RAW)

    # ─────────────────────────────────────────────────────────────
    # Admin
    # ─────────────────────────────────────────────────────────────
    ADMIN_EMAILS: List[str] = field(default_factory=lambda: _get_env_list("ADMIN_EMAILS"))

    def is_admin_email(self, email: str) -> bool:
        """Check if email is in the admin list."""
        if not email or not self.ADMIN_EMAILS:
            return False
        return email.lower().strip() in [e.lower() for e in self.ADMIN_EMAILS]

    # ─────────────────────────────────────────────────────────────
    # AWS S3 (video storage)
    # ─────────────────────────────────────────────────────────────
    AWS_REGION: str = field(default_factory=lambda: _get_env("AWS_REGION", "eu-west-2"))
    AWS_BUCKET_VIDEOS: str = field(default_factory=lambda: _get_env("AWS_BUCKET_VIDEOS"))
    AWS_ACCESS_KEY_ID: str = field(default_factory=lambda: _get_env("AWS_ACCESS_KEY_ID"))
    AWS_SECRET_ACCESS_KEY: str = field(default_factory=lambda: _get_env("AWS_SECRET_ACCESS_KEY"))

    # SigV4 presigned URLs cannot outlive 7 days
    SIGNED_URL_EXPIRES_SECONDS: int = field(default_factory=lambda: _get_env_int("SIGNED_URL_EXPIRES_SECONDS", 604800))

    @property
    def AWS_CONFIGURED(self) -> bool:
        """True if AWS S3 is configured."""
        return bool(self.AWS_BUCKET_VIDEOS and self.AWS_ACCESS_KEY_ID and self.AWS_SECRET_ACCESS_KEY)

    # ─────────────────────────────────────────────────────────────
    # CORS
    # ─────────────────────────────────────────────────────────────
    _ALLOWED_ORIGINS_RAW: str = field(default_factory=lambda: _get_env("ALLOWED_ORIGINS"))

    @property
    def ALLOWED_ORIGINS(self) -> List[str]:
        """List of allowed CORS origins."""
        raw = self._ALLOWED_ORIGINS_RAW
        if not raw:
            if self.IS_DEV:
                return [
                    "http://localhost:3000",
                    "http://localhost:9002",
                    "http://127.0.0.1:3000",
                ]
            return []

        if raw == "*":
            return ["*"]

        origins = []
        for part in raw.split(","):
            origin = part.strip()
            if origin.startswith("http://") or origin.startswith("https://"):
                origins.append(origin)
        return origins

    @property
    def ALLOW_ALL_ORIGINS(self) -> bool:
        """True if wildcard CORS is enabled."""
        return self._ALLOWED_ORIGINS_RAW == "*"

    # ─────────────────────────────────────────────────────────────
    # External APIs
    # ─────────────────────────────────────────────────────────────
    APIFY_TOKEN: str = field(default_factory=lambda: _get_env("APIFY_TOKEN"))
    APIFY_ACTOR_ID: str = field(default_factory=lambda: _get_env("APIFY_ACTOR_ID"))
    APIFY_BASE_URL: str = field(default_factory=lambda: _get_env("APIFY_BASE_URL", "https://api.apify.com").rstrip("/"))

    HEYGEN_API_KEY: str = field(default_factory=lambda: _get_env("HEYGEN_API_KEY"))
    HEYGEN_AVATAR_ID: str = field(default_factory=lambda: _get_env("HEYGEN_AVATAR_ID"))
    HEYGEN_VOICE_ID: str = field(default_factory=lambda: _get_env("HEYGEN_VOICE_ID"))
    HEYGEN_BASE_URL: str = field(default_factory=lambda: _get_env("HEYGEN_BASE_URL", "https://api.heygen.com").rstrip("/"))
    HEYGEN_VIDEO_WIDTH: int = field(default_factory=lambda: _get_env_int("HEYGEN_VIDEO_WIDTH", 1280))
    HEYGEN_VIDEO_HEIGHT: int = field(default_factory=lambda: _get_env_int("HEYGEN_VIDEO_HEIGHT", 720))

    OPENAI_API_KEY: str = field(default_factory=lambda: _get_env("OPENAI_API_KEY"))
    OPENAI_SCRIPT_MODEL: str = field(default_factory=lambda: _get_env("OPENAI_SCRIPT_MODEL", "gpt-4o-mini"))
    OPENAI_BASE_URL: str = field(default_factory=lambda: _get_env("OPENAI_BASE_URL", "https://api.openai.com").rstrip("/"))

    @property
    def APIFY_CONFIGURED(self) -> bool:
        return bool(self.APIFY_TOKEN and self.APIFY_ACTOR_ID)

    @property
    def HEYGEN_CONFIGURED(self) -> bool:
        return bool(self.HEYGEN_API_KEY and self.HEYGEN_AVATAR_ID and self.HEYGEN_VOICE_ID)

    @property
    def OPENAI_CONFIGURED(self) -> bool:
        return bool(self.OPENAI_API_KEY)

    # ─────────────────────────────────────────────────────────────
    # Jobs & Polling
    # ─────────────────────────────────────────────────────────────
    POLL_INTERVAL_SECONDS: float = field(default_factory=lambda: _get_env_float("POLL_INTERVAL_SECONDS", 10.0))
    SCRAPE_MAX_POLLS: int = field(default_factory=lambda: _get_env_int("SCRAPE_MAX_POLLS", 30))   # 5 min @ 10s
    VIDEO_MAX_POLLS: int = field(default_factory=lambda: _get_env_int("VIDEO_MAX_POLLS", 60))     # 10 min @ 10s
    JOB_WORKERS: int = field(default_factory=lambda: _get_env_int("JOB_WORKERS", 4))

    # ─────────────────────────────────────────────────────────────
    # Credits policy
    # ─────────────────────────────────────────────────────────────
    MAX_SCRAPE_URLS: int = field(default_factory=lambda: _get_env_int("MAX_SCRAPE_URLS", 10))
    SCRIPT_MIN_CHARS: int = field(default_factory=lambda: _get_env_int("SCRIPT_MIN_CHARS", 10))
    SCRIPT_MAX_CHARS: int = field(default_factory=lambda: _get_env_int("SCRIPT_MAX_CHARS", 1000))
    # Speaking rate used to estimate video seconds before the provider reports a duration
    VIDEO_WORDS_PER_MINUTE: int = field(default_factory=lambda: _get_env_int("VIDEO_WORDS_PER_MINUTE", 150))

    # ─────────────────────────────────────────────────────────────
    # Logging & Debug
    # ─────────────────────────────────────────────────────────────
    def log_summary(self) -> None:
        """Print configuration summary for debugging."""
        print("=" * 60)
        print("[CONFIG] ScoutReel Backend Configuration")
        print("=" * 60)
        print(f"  Environment: {self.FLASK_ENV} (IS_DEV={self.IS_DEV})")
        print(f"  Port: {self.PORT}")
        print("-" * 60)
        print(f"  Database configured: {self.HAS_DATABASE}")
        print(f"  Ledger store: {self.LEDGER_STORE or '(auto)'}")
        print(f"  Auth configured: {self.AUTH_CONFIGURED}")
        print(f"  AWS S3 configured: {self.AWS_CONFIGURED}")
        print(f"  Apify configured: {self.APIFY_CONFIGURED}")
        print(f"  HeyGen configured: {self.HEYGEN_CONFIGURED}")
        print(f"  OpenAI configured: {self.OPENAI_CONFIGURED}")
        print("-" * 60)
        print(f"  Poll interval: {self.POLL_INTERVAL_SECONDS}s")
        print(f"  Poll budget: scrape={self.SCRAPE_MAX_POLLS}, video={self.VIDEO_MAX_POLLS}")
        print(f"  Words per minute: {self.VIDEO_WORDS_PER_MINUTE}")
        print("=" * 60)

    def validate(self) -> List[str]:
        """
        Validate configuration and return list of warnings.
        Returns empty list if all critical config is present.
        """
        warnings = []

        if self.IS_PROD:
            if not self.HAS_DATABASE:
                warnings.append("DATABASE_URL not set - ledger store is not configured!")
            if not self.AUTH_CONFIGURED:
                warnings.append("AUTH_JWT_SECRET / AUTH_JWT_PUBLIC_KEY not set - every request will be rejected")
            if not self.AWS_CONFIGURED:
                warnings.append("AWS S3 not configured - videos will keep provider URLs only")
            if not self.ALLOWED_ORIGINS:
                warnings.append("ALLOWED_ORIGINS not set - CORS will block requests")

        return warnings

    def to_dict(self) -> dict:
        """Export safe configuration as dictionary (no secrets)."""
        return {
            "environment": self.FLASK_ENV,
            "is_dev": self.IS_DEV,
            "has_database": self.HAS_DATABASE,
            "ledger_store": self.LEDGER_STORE or "auto",
            "aws_configured": self.AWS_CONFIGURED,
            "apify_configured": self.APIFY_CONFIGURED,
            "heygen_configured": self.HEYGEN_CONFIGURED,
            "openai_configured": self.OPENAI_CONFIGURED,
            "poll_interval_seconds": self.POLL_INTERVAL_SECONDS,
        }


# ─────────────────────────────────────────────────────────────
# Singleton instance
# ─────────────────────────────────────────────────────────────
try:
    config = Config()
    print(f"[CONFIG] Loaded successfully (IS_DEV={config.IS_DEV})")
except Exception as e:
    print(f"[CONFIG] FATAL: Failed to load config: {repr(e)}")
    raise
