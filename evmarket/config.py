# config.py
import os

from dotenv import load_dotenv

load_dotenv()


def _int_env(name: str, default: int) -> int:
    raw = (os.getenv(name) or "").strip()
    if not raw:
        return default
    try:
        return int(raw)
    except ValueError:
        return default


class Config:
    # Database
    SQLALCHEMY_DATABASE_URI = os.getenv("DATABASE_URL", "sqlite:///evmarket.db")
    SQLALCHEMY_TRACK_MODIFICATIONS = False

    # JSON / i18n
    JSON_AS_ASCII = False

    LOG_LEVEL = os.getenv("LOG_LEVEL", "INFO").upper()

    # Tokens are issued by the auth service; we only verify them
    JWT_SECRET = os.getenv("JWT_SECRET", "devsecret")
    JWT_ALGO = os.getenv("JWT_ALGO", "HS256")

    # User directory (auth service). Empty disables profile lookups.
    USER_SERVICE_URL = os.getenv("USER_SERVICE_URL", "")
    USER_SERVICE_TIMEOUT = _int_env("USER_SERVICE_TIMEOUT", 4)

    # Review edit policy
    REVIEW_MAX_EDITS = _int_env("REVIEW_MAX_EDITS", 2)
    REVIEW_EDIT_WINDOW_DAYS = _int_env("REVIEW_EDIT_WINDOW_DAYS", 90)

    # Search paging
    SEARCH_DEFAULT_PER_PAGE = _int_env("SEARCH_DEFAULT_PER_PAGE", 20)
    SEARCH_MAX_PER_PAGE = _int_env("SEARCH_MAX_PER_PAGE", 50)
