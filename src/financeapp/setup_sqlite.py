"""
FinanceApp - SQLite Database Setup & Initialization

This module creates the FinanceApp SQLite schema: every table with its
foreign keys and the indexes the dashboard queries lean on.

Database Schema Overview:
------------------------
- users: credentials, security phrase, onboarding flag
- accounts: checking, savings, investment and credit card accounts (cached balance)
- categories: income/expense categories with colors
- transactions: dated money movements tied to an account and a category
- budgets: spending ceilings per category and period
- investments: investment positions
- financial_goals: savings targets
- ai_predictions: stored insight rows (JSON payload)
- user_notification_states: read/dismiss flags per synthetic notification id

Key Design Features:
- Foreign key constraints for referential integrity
- TEXT storage for monetary values (preserves exact precision)
- is_active flags for soft deletes
- Every owned table carries user_id and is indexed on it
"""

import logging
import sqlite3
from pathlib import Path

from .config import Config

logger = logging.getLogger(__name__)

TABLES = [
    (
        'users',
        """
        CREATE TABLE IF NOT EXISTS users (
            id INTEGER PRIMARY KEY AUTOINCREMENT,
            username TEXT NOT NULL UNIQUE,
            email TEXT NOT NULL UNIQUE,
            password TEXT NOT NULL,
            user_type TEXT NOT NULL DEFAULT 'user',
            security_phrase TEXT DEFAULT NULL,
            onboarding_completed INTEGER DEFAULT 0,
            is_active INTEGER DEFAULT 1,
            last_login_at TEXT DEFAULT NULL,
            created_at TEXT DEFAULT CURRENT_TIMESTAMP
        )
        """,
        [],
    ),
    (
        'accounts',
        """
        CREATE TABLE IF NOT EXISTS accounts (
            id INTEGER PRIMARY KEY AUTOINCREMENT,
            user_id INTEGER NOT NULL,
            name TEXT NOT NULL,
            type TEXT CHECK(type IN ('checking', 'savings', 'investment', 'credit_card')) NOT NULL,
            balance TEXT NOT NULL DEFAULT '0.00',
            credit_limit TEXT DEFAULT NULL,
            closing_day INTEGER DEFAULT NULL,
            due_day INTEGER DEFAULT NULL,
            domain TEXT DEFAULT NULL,
            is_active INTEGER DEFAULT 1,
            created_at TEXT DEFAULT CURRENT_TIMESTAMP,
            FOREIGN KEY (user_id) REFERENCES users(id) ON DELETE CASCADE
        )
        """,
        ["CREATE INDEX IF NOT EXISTS idx_accounts_user_id ON accounts(user_id);"],
    ),
    (
        'categories',
        """
        CREATE TABLE IF NOT EXISTS categories (
            id INTEGER PRIMARY KEY AUTOINCREMENT,
            user_id INTEGER NOT NULL,
            name TEXT NOT NULL,
            type TEXT CHECK(type IN ('income', 'expense')) NOT NULL,
            color TEXT DEFAULT '#1E40AF',
            icon TEXT DEFAULT 'Tag',
            is_active INTEGER DEFAULT 1,
            created_at TEXT DEFAULT CURRENT_TIMESTAMP,
            FOREIGN KEY (user_id) REFERENCES users(id) ON DELETE CASCADE
        )
        """,
        ["CREATE INDEX IF NOT EXISTS idx_categories_user_id ON categories(user_id);"],
    ),
    (
        'transactions',
        """
        CREATE TABLE IF NOT EXISTS transactions (
            id INTEGER PRIMARY KEY AUTOINCREMENT,
            user_id INTEGER NOT NULL,
            account_id INTEGER NOT NULL,
            category_id INTEGER NOT NULL,
            title TEXT NOT NULL,
            amount TEXT NOT NULL,
            type TEXT CHECK(type IN ('income', 'expense', 'transfer')) NOT NULL,
            description TEXT DEFAULT NULL,
            date TEXT NOT NULL,
            due_date TEXT DEFAULT NULL,
            paid_date TEXT DEFAULT NULL,
            is_paid INTEGER DEFAULT 0,
            is_recurring INTEGER DEFAULT 0,
            recurrence_type TEXT DEFAULT NULL,
            recurrence_interval INTEGER DEFAULT 1,
            recurrence_end_date TEXT DEFAULT NULL,
            attachment_url TEXT DEFAULT NULL,
            created_at TEXT DEFAULT CURRENT_TIMESTAMP,
            FOREIGN KEY (user_id) REFERENCES users(id) ON DELETE CASCADE,
            FOREIGN KEY (account_id) REFERENCES accounts(id),
            FOREIGN KEY (category_id) REFERENCES categories(id)
        )
        """,
        [
            "CREATE INDEX IF NOT EXISTS idx_transactions_user_date ON transactions(user_id, date DESC);",
            "CREATE INDEX IF NOT EXISTS idx_transactions_category ON transactions(category_id);",
            "CREATE INDEX IF NOT EXISTS idx_transactions_due_date ON transactions(user_id, due_date);",
        ],
    ),
    (
        'budgets',
        """
        CREATE TABLE IF NOT EXISTS budgets (
            id INTEGER PRIMARY KEY AUTOINCREMENT,
            user_id INTEGER NOT NULL,
            category_id INTEGER NOT NULL,
            name TEXT NOT NULL,
            amount TEXT NOT NULL,
            period TEXT CHECK(period IN ('monthly', 'yearly')) NOT NULL,
            start_date TEXT NOT NULL,
            end_date TEXT DEFAULT NULL,
            is_active INTEGER DEFAULT 1,
            created_at TEXT DEFAULT CURRENT_TIMESTAMP,
            FOREIGN KEY (user_id) REFERENCES users(id) ON DELETE CASCADE,
            FOREIGN KEY (category_id) REFERENCES categories(id)
        )
        """,
        ["CREATE INDEX IF NOT EXISTS idx_budgets_user_id ON budgets(user_id);"],
    ),
    (
        'investments',
        """
        CREATE TABLE IF NOT EXISTS investments (
            id INTEGER PRIMARY KEY AUTOINCREMENT,
            user_id INTEGER NOT NULL,
            name TEXT NOT NULL,
            type TEXT NOT NULL,
            institution TEXT NOT NULL,
            initial_amount TEXT NOT NULL,
            current_amount TEXT DEFAULT NULL,
            expected_return TEXT DEFAULT NULL,
            start_date TEXT NOT NULL,
            maturity_date TEXT DEFAULT NULL,
            is_active INTEGER DEFAULT 1,
            created_at TEXT DEFAULT CURRENT_TIMESTAMP,
            FOREIGN KEY (user_id) REFERENCES users(id) ON DELETE CASCADE
        )
        """,
        ["CREATE INDEX IF NOT EXISTS idx_investments_user_id ON investments(user_id);"],
    ),
    (
        'financial_goals',
        """
        CREATE TABLE IF NOT EXISTS financial_goals (
            id INTEGER PRIMARY KEY AUTOINCREMENT,
            user_id INTEGER NOT NULL,
            name TEXT NOT NULL,
            target_amount TEXT NOT NULL,
            current_amount TEXT DEFAULT '0.00',
            target_date TEXT NOT NULL,
            category TEXT NOT NULL,
            is_active INTEGER DEFAULT 1,
            created_at TEXT DEFAULT CURRENT_TIMESTAMP,
            FOREIGN KEY (user_id) REFERENCES users(id) ON DELETE CASCADE
        )
        """,
        ["CREATE INDEX IF NOT EXISTS idx_goals_user_id ON financial_goals(user_id);"],
    ),
    (
        'ai_predictions',
        """
        CREATE TABLE IF NOT EXISTS ai_predictions (
            id INTEGER PRIMARY KEY AUTOINCREMENT,
            user_id INTEGER NOT NULL,
            type TEXT NOT NULL,
            category_id INTEGER DEFAULT NULL,
            prediction_data TEXT NOT NULL,
            confidence TEXT DEFAULT NULL,
            valid_from TEXT NOT NULL,
            valid_to TEXT NOT NULL,
            is_active INTEGER DEFAULT 1,
            created_at TEXT DEFAULT CURRENT_TIMESTAMP,
            FOREIGN KEY (user_id) REFERENCES users(id) ON DELETE CASCADE,
            FOREIGN KEY (category_id) REFERENCES categories(id) ON DELETE SET NULL
        )
        """,
        ["CREATE INDEX IF NOT EXISTS idx_predictions_user_id ON ai_predictions(user_id);"],
    ),
    (
        'user_notification_states',
        """
        CREATE TABLE IF NOT EXISTS user_notification_states (
            id INTEGER PRIMARY KEY AUTOINCREMENT,
            user_id INTEGER NOT NULL,
            notification_id TEXT NOT NULL,
            is_read INTEGER NOT NULL DEFAULT 0,
            is_dismissed INTEGER NOT NULL DEFAULT 0,
            read_at TEXT DEFAULT NULL,
            dismissed_at TEXT DEFAULT NULL,
            created_at TEXT DEFAULT CURRENT_TIMESTAMP,
            FOREIGN KEY (user_id) REFERENCES users(id) ON DELETE CASCADE,
            UNIQUE(user_id, notification_id)
        )
        """,
        [],
    ),
]


def get_db_path(db_path=None):
    """Return the path to the SQLite database file"""
    return Path(db_path or Config.DATABASE_PATH)


def create_database(db_path=None):
    """
    Create the FinanceApp schema, leaving any existing tables and data alone.

    Use reset_database() to start fresh.
    """
    db_path = get_db_path(db_path)
    db_path.parent.mkdir(parents=True, exist_ok=True)

    conn = sqlite3.connect(str(db_path))
    cursor = conn.cursor()
    cursor.execute("PRAGMA foreign_keys = ON;")

    logger.info("[SCHEMA] Creating FinanceApp database at %s", db_path)
    try:
        for table, ddl, indexes in TABLES:
            cursor.execute(ddl)
            for index in indexes:
                cursor.execute(index)
            logger.debug("[SCHEMA] Table '%s' OK", table)

        conn.commit()
        return True

    except sqlite3.Error as err:
        logger.error("[SCHEMA] Error creating database: %s", err)
        conn.rollback()
        return False

    finally:
        conn.close()


def reset_database(db_path=None):
    """
    DANGER: Delete the existing database and create a fresh one.
    All data will be permanently lost!
    """
    db_path = get_db_path(db_path)

    if db_path.exists():
        logger.warning("[SCHEMA] Deleting existing database at %s", db_path)
        db_path.unlink()

    return create_database(db_path)


def verify_schema(db_path=None):
    """Check that every expected table exists."""
    db_path = get_db_path(db_path)
    if not db_path.exists():
        logger.error("[SCHEMA] Database does not exist: %s", db_path)
        return False

    conn = sqlite3.connect(str(db_path))
    try:
        cursor = conn.cursor()
        for table, _, _ in TABLES:
            cursor.execute("SELECT name FROM sqlite_master WHERE type='table' AND name=?", (table,))
            if not cursor.fetchone():
                logger.error("[SCHEMA] Table '%s' MISSING", table)
                return False
        return True
    finally:
        conn.close()


if __name__ == "__main__":
    logging.basicConfig(level=logging.INFO, format='%(levelname)s %(message)s')

    db_path = get_db_path()
    if not db_path.exists():
        print(f"No database at {db_path}, creating it.")
        create_database(db_path)
        verify_schema(db_path)
    else:
        choice = input(f"Database exists at {db_path}.\n  1. Verify schema\n  2. Reset (deletes all data)\n  3. Cancel\n\nChoice: ")
        if choice == '1':
            print("Schema OK" if verify_schema(db_path) else "Schema incomplete, see log")
        elif choice == '2':
            if input("Type 'DELETE' to confirm: ") == 'DELETE':
                reset_database(db_path)
                verify_schema(db_path)
            else:
                print("Reset cancelled.")
        else:
            print("Cancelled.")
