# src/deckproxy/core/config.py
from pydantic_settings import BaseSettings, SettingsConfigDict
from typing import List, Optional


class Settings(BaseSettings):
    # App/Env
    ENV: str = "dev"
    APP_NAME: str = "deckproxy"
    PORT: int = 3000
    CORS_ORIGINS: str = "*"
    PUBLIC_DIR: Optional[str] = "public"  # static front end, mounted only if present

    # Outbound fetch policy
    # comma list of host globs; "*.manuscdn.com" matches any subdomain
    ALLOWED_ORIGIN_PATTERNS: str = "manuscdn.com,*.manuscdn.com,manus.im,*.manus.im,*.manus.space"
    ALLOW_ANY_ORIGIN: bool = False
    BLOCK_PRIVATE_NETWORKS: bool = True
    FETCH_TIMEOUT_SEC: float = 30
    IMAGE_TIMEOUT_SEC: float = 15
    MAX_FETCH_BYTES: int = 200 * 1024 * 1024

    # Manifest detection; empty string disables the URL heuristic
    MANIFEST_URL_MARKERS: Optional[str] = None

    # Deck compilation
    SLIDE_FETCH_CONCURRENCY: int = 1
    DECK_AUTHOR: str = "Manus API Client"
    DEFAULT_DECK_TITLE: str = "Presentation"

    # Upstream task/file API
    UPSTREAM_API_BASE: str = "https://api.manus.im/v1"
    UPSTREAM_TIMEOUT_SEC: float = 60
    MAX_UPLOAD_MB: int = 50

    model_config = SettingsConfigDict(
        env_file=".env",
        extra="ignore",
        case_sensitive=False,
    )

    def allowed_patterns(self) -> List[str]:
        return [p.strip().lower() for p in (self.ALLOWED_ORIGIN_PATTERNS or "").split(",") if p.strip()]

    def cors_origins(self) -> List[str]:
        return [o.strip() for o in (self.CORS_ORIGINS or "").split(",") if o.strip()]


settings = Settings()
