"""FinanceApp - personal finance REST backend (Flask + SQLite)."""

from .api import create_app
from .engine import FinanceEngine

__version__ = "1.0.0"

__all__ = ['create_app', 'FinanceEngine', '__version__']
