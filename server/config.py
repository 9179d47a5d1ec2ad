# config.py
import os
from typing import List, Optional

from dotenv import load_dotenv
load_dotenv()

from concurrent.futures import ThreadPoolExecutor
from pydantic import BaseModel, Field

DEFAULT_GEMINI_MODEL = "gemini-2.0-flash"
FALLBACK_GEMINI_MODELS = ["gemini-2.0-flash-exp", "gemini-1.5-flash-latest"]

MAX_IMAGE_BYTES = 10 * 1024 * 1024
MAX_IMAGE_DIMENSION = 2048

MAX_WORKERS = min(32, (os.cpu_count() or 4) * 2)
thread_pool = ThreadPoolExecutor(max_workers=MAX_WORKERS)


def _csv(value: Optional[str]) -> List[str]:
    if not value:
        return []
    return [item.strip() for item in value.split(",") if item.strip()]


def model_candidates(env_model: Optional[str] = None) -> List[str]:
    """Ordered, de-duplicated list of Gemini model ids to try."""
    candidates = [env_model, DEFAULT_GEMINI_MODEL, *FALLBACK_GEMINI_MODELS]
    seen: List[str] = []
    for name in candidates:
        if name and name not in seen:
            seen.append(name)
    return seen


class Settings(BaseModel):
    gemini_api_key: Optional[str] = None
    gemini_models: List[str] = Field(default_factory=model_candidates)
    gemini_timeout_s: float = 45.0
    gemini_max_attempts: int = 2

    request_timeout_s: float = 55.0
    max_image_bytes: int = MAX_IMAGE_BYTES
    max_image_dimension: int = MAX_IMAGE_DIMENSION
    default_scan_limit: int = 5

    cors_allowed_origins: List[str] = Field(default_factory=list)
    cors_preview_suffix: Optional[str] = None
    cors_preview_project: Optional[str] = None

    supabase_url: Optional[str] = None
    supabase_key: Optional[str] = None
    dev_tokens: List[str] = Field(default_factory=list)

    service_name: str = "rosterintel"
    env: str = "dev"
    log_level: str = "INFO"
    log_file: Optional[str] = None

    @property
    def uses_supabase(self) -> bool:
        return bool(self.supabase_url and self.supabase_key)


def load_settings() -> Settings:
    """Read settings from the process environment (and .env, if present)."""
    return Settings(
        gemini_api_key=os.getenv("GEMINI_API_KEY") or os.getenv("GOOGLE_API_KEY"),
        gemini_models=model_candidates(os.getenv("GEMINI_MODEL")),
        gemini_timeout_s=float(os.getenv("GEMINI_TIMEOUT_S", "45")),
        gemini_max_attempts=int(os.getenv("GEMINI_MAX_ATTEMPTS", "2")),
        request_timeout_s=float(os.getenv("REQUEST_TIMEOUT_S", "55")),
        max_image_bytes=int(os.getenv("MAX_IMAGE_BYTES", str(MAX_IMAGE_BYTES))),
        max_image_dimension=int(os.getenv("MAX_IMAGE_DIMENSION", str(MAX_IMAGE_DIMENSION))),
        default_scan_limit=int(os.getenv("DEFAULT_SCAN_LIMIT", "5")),
        cors_allowed_origins=_csv(os.getenv("CORS_ALLOWED_ORIGINS")),
        cors_preview_suffix=os.getenv("CORS_PREVIEW_SUFFIX") or None,
        cors_preview_project=os.getenv("CORS_PREVIEW_PROJECT") or None,
        supabase_url=os.getenv("SUPABASE_URL") or None,
        supabase_key=os.getenv("SUPABASE_SERVICE_ROLE_KEY") or os.getenv("SUPABASE_ANON_KEY") or None,
        dev_tokens=_csv(os.getenv("ROSTER_DEV_TOKENS")),
        service_name=os.getenv("SERVICE_NAME", "rosterintel"),
        env=os.getenv("APP_ENV", "dev"),
        log_level=os.getenv("LOG_LEVEL", "INFO").upper(),
        log_file=os.getenv("LOG_FILE") or None,
    )
