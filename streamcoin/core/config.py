from functools import lru_cache
from typing import Any, List, Literal

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict

_DEFAULT_CORS = ["http://localhost:3000", "http://localhost:5173"]


def _parse_cors_origins(v: Any) -> List[str]:
    try:
        if v is None or v == "":
            return _DEFAULT_CORS.copy()
        if isinstance(v, list):
            return [x for x in v if isinstance(x, str) and x.strip()]
        s = str(v).strip()
        if not s:
            return _DEFAULT_CORS.copy()
        if s.startswith("["):
            import json
            out = json.loads(s)
            return [x for x in out if isinstance(x, str) and x.strip()] or _DEFAULT_CORS.copy()
        return [x.strip() for x in s.split(",") if x.strip()] or _DEFAULT_CORS.copy()
    except Exception:
        return _DEFAULT_CORS.copy()


class Settings(BaseSettings):
    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
        populate_by_name=True,
    )

    # App
    env: str = Field(default="development", description="ENV")
    debug: bool = Field(default=False, description="DEBUG")
    public_base_url: str = Field(default="http://localhost:3000", alias="PUBLIC_BASE_URL")

    # MongoDB
    mongodb_uri: str = Field(default="mongodb://localhost:27017", alias="MONGODB_URI")
    mongodb_db_name: str = Field(default="streamcoin", alias="MONGODB_DB_NAME")
    # Multi-document transactions need a replica set (Atlas always has one)
    mongodb_transactions: bool = Field(default=True, alias="MONGODB_TRANSACTIONS")
    mongodb_timeout_ms: int = Field(default=10000, alias="MONGODB_TIMEOUT_MS")

    # Redis
    redis_url: str = Field(default="redis://localhost:6379/0", alias="REDIS_URL")

    # Firebase
    firebase_project_id: str | None = Field(default=None, alias="FIREBASE_PROJECT_ID")
    google_application_credentials: str | None = Field(default=None, alias="GOOGLE_APPLICATION_CREDENTIALS")

    # Pesapal
    pesapal_api_url: str = Field(default="https://cybqa.pesapal.com/pesapalv3", alias="PESAPAL_API_URL")
    pesapal_consumer_key: str = Field(default="", alias="PESAPAL_CONSUMER_KEY")
    pesapal_consumer_secret: str = Field(default="", alias="PESAPAL_CONSUMER_SECRET")
    pesapal_ipn_id: str = Field(default="", alias="PESAPAL_IPN_ID")
    pesapal_country_code: str = Field(default="KE", alias="PESAPAL_COUNTRY_CODE")
    # Pesapal tokens live 5 minutes; refresh a little early
    pesapal_token_validity_seconds: int = Field(default=290, alias="PESAPAL_TOKEN_VALIDITY_SECONDS")
    pesapal_timeout_seconds: float = Field(default=15.0, alias="PESAPAL_TIMEOUT_SECONDS")

    # LiveKit
    livekit_api_key: str = Field(default="", alias="LIVEKIT_API_KEY")
    livekit_api_secret: str = Field(default="", alias="LIVEKIT_API_SECRET")
    livekit_token_ttl_seconds: int = Field(default=6 * 3600, alias="LIVEKIT_TOKEN_TTL_SECONDS")

    # Sentry
    sentry_dsn: str | None = Field(default=None, alias="SENTRY_DSN")

    # CORS: env as string, exposed as list
    cors_origins_raw: str = Field(
        default="http://localhost:3000,http://localhost:5173",
        alias="CORS_ORIGINS",
        description="Comma-separated or JSON list",
    )

    @property
    def cors_origins(self) -> List[str]:
        return _parse_cors_origins(getattr(self, "cors_origins_raw", None))

    # Coin economy
    starting_bonus_coins: int = Field(default=550, alias="STARTING_BONUS_COINS")
    ad_reward_coins: int = Field(default=20, alias="AD_REWARD_COINS")
    ad_rewards_per_day: int = Field(default=10, alias="AD_REWARDS_PER_DAY")
    over_debit_policy: Literal["clamp", "reject"] = Field(default="clamp", alias="OVER_DEBIT_POLICY")
    pricing_file: str | None = Field(default=None, alias="PRICING_FILE")

    # Stale transaction sweep (worker)
    stale_pending_minutes: int = Field(default=15, alias="STALE_PENDING_MINUTES")
    abandon_untracked_minutes: int = Field(default=60, alias="ABANDON_UNTRACKED_MINUTES")

    @property
    def webhook_url(self) -> str:
        return self.public_base_url.rstrip("/") + "/api/recharge/webhook"


@lru_cache
def get_settings() -> Settings:
    return Settings()
