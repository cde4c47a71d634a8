from pydantic import BaseModel
import os
import logging
from pathlib import Path

logger = logging.getLogger(__name__)

# Load .env file if it exists (before reading os.getenv)
_env_path = Path(__file__).resolve().parent.parent / ".env"
if _env_path.exists():
    with open(_env_path) as f:
        for line in f:
            line = line.strip()
            if line and not line.startswith("#") and "=" in line:
                key, _, value = line.partition("=")
                key = key.strip()
                value = value.strip()
                # Only set if not already in environment (env vars take precedence)
                if key not in os.environ:
                    os.environ[key] = value

_DEFAULT_DB_PATH = Path(__file__).resolve().parent.parent / "data" / "voxdispatch.db"


def _sanitize_ascii(val: str) -> str:
    """Strip non-ASCII characters from config values (prevents encoding errors)"""
    return val.encode('ascii', errors='ignore').decode('ascii').strip()


def mask_secret(val: str) -> str:
    return '***' + val[-4:] if len(val) > 4 else 'EMPTY'


class Settings(BaseModel):
    # Network
    http_host: str = os.getenv("DISPATCHER_HOST", "0.0.0.0")
    http_port: int = int(os.getenv("PORT", "3000"))

    # Static key shared by all API callers
    api_key_header: str = "x-api-key"
    dispatcher_api_key: str = _sanitize_ascii(os.getenv("DISPATCHER_API_KEY", ""))

    # Intent model (OpenAI-compatible tool calling)
    openai_api_key: str = _sanitize_ascii(os.getenv("OPENAI_API_KEY", ""))
    openai_base_url: str = _sanitize_ascii(os.getenv("OPENAI_BASE_URL", "https://api.openai.com/v1"))
    llm_model: str = _sanitize_ascii(os.getenv("LLM_MODEL", "gpt-4o-mini"))

    # Health monitor
    health_check_interval: float = float(os.getenv("HEALTH_CHECK_INTERVAL", "60"))
    health_check_concurrency: int = int(os.getenv("HEALTH_CHECK_CONCURRENCY", "5"))

    # Outbound timeouts (seconds)
    probe_timeout: float = float(os.getenv("PROBE_TIMEOUT", "3"))
    dispatch_timeout: float = float(os.getenv("DISPATCH_TIMEOUT", "10"))
    docs_timeout: float = float(os.getenv("DOCS_TIMEOUT", "5"))

    # Paths every registered service must expose
    docs_path: str = os.getenv("SERVICE_DOCS_PATH", "/dispatch/docs")
    health_path: str = os.getenv("SERVICE_HEALTH_PATH", "/dispatch/health")

    # Storage
    database_url: str = os.getenv("DATABASE_URL", f"sqlite+aiosqlite:///{_DEFAULT_DB_PATH}")


settings = Settings()

if not settings.dispatcher_api_key:
    logger.warning("DISPATCHER_API_KEY is not set, every /api request will be rejected")

# Log config for debugging
logger.info(f"Config: Intent → {settings.openai_base_url}, model={settings.llm_model} "
            f"(key={mask_secret(settings.openai_api_key)})")
logger.info(f"Config: health sweep every {settings.health_check_interval:.0f}s, "
            f"docs={settings.docs_path}, health={settings.health_path}")
