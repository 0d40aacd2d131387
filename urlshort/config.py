import os
from dataclasses import dataclass, field
from pathlib import Path

from dotenv import load_dotenv
from fastapi import Request

# Project root (parent of urlshort/)
ROOT_DIR = Path(__file__).parent.parent
ENV_PATH = ROOT_DIR / ".env"


def _env_int(name: str, default: int) -> int:
    raw = os.getenv(name)
    if raw is None or raw.strip() == "":
        return default
    try:
        return int(raw)
    except ValueError:
        raise RuntimeError(f"{name} must be an integer, got {raw!r}")


@dataclass
class Settings:
    jwt_secret: str
    environment: str = "dev"
    database_url: str = ""
    jwt_algorithm: str = "HS256"
    token_expire_days: int = 7
    token_issuer: str = "url-shortener-app"
    token_audience: str = "url-shortener-users"
    app_url: str = "http://localhost:8000/"
    cors_origins: list[str] = field(default_factory=list)
    bcrypt_rounds: int = 12
    short_code_length: int = 7
    log_level: str = "INFO"

    def __post_init__(self):
        if not self.jwt_secret:
            raise RuntimeError("JWT_SECRET is not set")
        if not self.app_url.endswith("/"):
            self.app_url += "/"
        if not self.database_url:
            if self.environment == "prod":
                raise RuntimeError("DATABASE_URL must be set in production")
            # SQLite for local dev, stored next to the package folder
            self.database_url = f"sqlite:///{ROOT_DIR / 'urlshort_dev.db'}"
        if not self.cors_origins:
            self.cors_origins = ["*"] if self.environment == "dev" else [self.app_url.rstrip("/")]
        if not 4 <= self.bcrypt_rounds <= 31:
            raise RuntimeError("BCRYPT_ROUNDS must be between 4 and 31")
        if self.environment == "prod" and self.bcrypt_rounds < 12:
            raise RuntimeError("BCRYPT_ROUNDS must be at least 12 in production")
        if not 1 <= self.short_code_length <= 50:
            raise RuntimeError("SHORT_CODE_LENGTH must be between 1 and 50")

    @property
    def cookie_secure(self) -> bool:
        # Only set secure cookie if HTTPS is configured
        return self.app_url.startswith("https://")

    @property
    def is_sqlite(self) -> bool:
        return self.database_url.startswith("sqlite")

    @classmethod
    def from_env(cls, env_path: Path | None = ENV_PATH) -> "Settings":
        if env_path is not None:
            load_dotenv(env_path)
        origins = [o.strip() for o in os.getenv("CORS_ORIGINS", "").split(",") if o.strip()]
        return cls(
            jwt_secret=(os.getenv("JWT_SECRET") or "").strip(),
            environment=os.getenv("ENVIRONMENT", "dev"),
            database_url=os.getenv("DATABASE_URL", ""),
            jwt_algorithm=os.getenv("JWT_ALGORITHM", "HS256"),
            token_expire_days=_env_int("TOKEN_EXPIRE_DAYS", 7),
            token_issuer=os.getenv("TOKEN_ISSUER", "url-shortener-app"),
            token_audience=os.getenv("TOKEN_AUDIENCE", "url-shortener-users"),
            app_url=os.getenv("APP_URL", "http://localhost:8000/"),
            cors_origins=origins,
            bcrypt_rounds=_env_int("BCRYPT_ROUNDS", 12),
            short_code_length=_env_int("SHORT_CODE_LENGTH", 7),
            log_level=os.getenv("LOG_LEVEL", "INFO").upper(),
        )


def get_settings(request: Request) -> Settings:
    return request.app.state.settings
