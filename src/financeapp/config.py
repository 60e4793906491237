"""
FinanceApp - Configuration

Settings are read from the environment, with a local `.env` file loaded
first through python-dotenv (SECRET_KEY, database location, cookie flags).
"""

import os
from pathlib import Path

from dotenv import load_dotenv

load_dotenv()

DEFAULT_DB_PATH = Path(__file__).parent / "data" / "financeapp.db"


def _env_bool(name, default=False):
    value = os.getenv(name)
    if value is None:
        return default
    return value.strip().lower() in ("1", "true", "yes", "on")


class Config:
    """Flask configuration for the FinanceApp API."""

    SECRET_KEY = os.getenv('SECRET_KEY', 'dev-secret-key-change-in-production')
    DATABASE_PATH = os.getenv('FINANCEAPP_DB_PATH', str(DEFAULT_DB_PATH))

    SESSION_COOKIE_HTTPONLY = True
    SESSION_COOKIE_SECURE = _env_bool('SESSION_COOKIE_SECURE', False)
    SESSION_COOKIE_SAMESITE = os.getenv('SESSION_COOKIE_SAMESITE', 'Lax')

    BCRYPT_ROUNDS = int(os.getenv('BCRYPT_ROUNDS', 12))

    CORS_ORIGINS = os.getenv('CORS_ORIGINS', '*')
    LOG_LEVEL = os.getenv('LOG_LEVEL', 'INFO')

    HOST = os.getenv('FINANCEAPP_HOST', '127.0.0.1')
    PORT = int(os.getenv('FINANCEAPP_PORT', 5000))

    TESTING = False
