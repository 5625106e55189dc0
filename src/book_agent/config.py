"""
config.py
Runtime configuration for the book excerpt agent.

Values come from the environment (optionally a .env file) and are exposed as
module constants. Call validate_environment() once at startup.
"""

import os

from dotenv import load_dotenv

from src.book_agent.errors import EnvironmentValidationError

load_dotenv()  # Load .env file if present

VALID_ENVIRONMENTS = ("development", "production", "test")

# ─── Server ──────────────────────────────────────────────────────────────────

APP_ENV = os.getenv("APP_ENV", "development")
HOST = os.getenv("HOST", "0.0.0.0")
PORT = os.getenv("PORT", "4111")
AGENT_ID = os.getenv("AGENT_ID", "book-extractor-001")
SERVICE_NAME = "a2a-book-agent"
SERVICE_VERSION = "1.0.0"
USER_AGENT = "A2A-Book-Agent/1.0.0"
ALLOWED_ORIGINS = [
    origin.strip()
    for origin in os.getenv("ALLOWED_ORIGINS", "https://telex.im").split(",")
    if origin.strip()
]
LOG_LEVEL = os.getenv("LOG_LEVEL", "DEBUG" if APP_ENV == "development" else "INFO")

# ─── Catalog ─────────────────────────────────────────────────────────────────

GUTENDEX_URL = os.getenv("GUTENDEX_URL", "https://gutendex.com/books")
SEARCH_TIMEOUT = float(os.getenv("SEARCH_TIMEOUT", "10"))
FETCH_TIMEOUT = float(os.getenv("FETCH_TIMEOUT", "15"))
MAX_RETRIES = int(os.getenv("MAX_RETRIES", "3"))
MAX_CONTENT_BYTES = 10 * 1024 * 1024

# ─── Requests & tasks ────────────────────────────────────────────────────────

REQUEST_TIMEOUT = float(os.getenv("REQUEST_TIMEOUT", "30"))
RATE_LIMIT_MAX = int(os.getenv("RATE_LIMIT_MAX", "100"))
RATE_LIMIT_WINDOW_MS = int(os.getenv("RATE_LIMIT_WINDOW_MS", "60000"))
TASK_TTL_SECONDS = float(os.getenv("TASK_TTL_SECONDS", "0"))
TASK_SWEEP_INTERVAL = float(os.getenv("TASK_SWEEP_INTERVAL", "60"))

# ─── LLM ─────────────────────────────────────────────────────────────────────

OPENAI_API_KEY = os.getenv("OPENAI_API_KEY", "")
OPENAI_MODEL = os.getenv("OPENAI_MODEL", "gpt-4o-mini")
BOOK_AGENT_USE_LLM = os.getenv("BOOK_AGENT_USE_LLM", "false").lower() in ("1", "true", "yes")


def is_development() -> bool:
    return APP_ENV == "development"


def is_production() -> bool:
    return APP_ENV == "production"


def get_port() -> int:
    return int(PORT)


def validate_environment() -> None:
    """
    Validate the configuration loaded from the environment.

    Raises:
        EnvironmentValidationError: If a setting is missing or malformed
    """
    if APP_ENV not in VALID_ENVIRONMENTS:
        raise EnvironmentValidationError(
            f"APP_ENV must be one of: {', '.join(VALID_ENVIRONMENTS)}"
        )

    try:
        port = int(PORT)
    except ValueError:
        raise EnvironmentValidationError("PORT must be a valid port number (1-65535)")
    if port < 1 or port > 65535:
        raise EnvironmentValidationError("PORT must be a valid port number (1-65535)")

    if not HOST.strip():
        raise EnvironmentValidationError("HOST cannot be empty")

    if BOOK_AGENT_USE_LLM and not OPENAI_API_KEY:
        raise EnvironmentValidationError(
            "OPENAI_API_KEY is required when BOOK_AGENT_USE_LLM is enabled"
        )
