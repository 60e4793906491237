"""
FinanceApp - Personal Finance Engine

This module contains FinanceEngine, the stateless data-access facade behind
the REST API. Every call opens its own SQLite connection, runs
parameterised SQL and closes the connection again; nothing is cached
between calls.

The engine covers:
- Users: registration with bcrypt hashes, login by username or email,
  security-phrase password reset, onboarding flag
- CRUD for accounts, categories, transactions, budgets, investments and
  financial goals (soft delete everywhere except transactions)
- Budget usage for the current period
- The unfiltered and the filtered dashboard aggregates
- Synthetic notifications plus their persisted read/dismiss state
- Data management: wipe, JSON backup export and atomic import

Conventions:
- Every read and write is scoped by user_id
- Money is stored as TEXT with two decimals and returned as strings
- Transaction amounts are positive magnitudes; `type` carries the sign
- Write methods return (success, payload) tuples where payload is the
  stored row on success and an error message on failure
"""

import datetime
import json
import logging
import sqlite3
from decimal import Decimal

import bcrypt

from . import dashboard
from .backup import BACKUP_COLUMNS, BACKUP_TABLES, BackupError, build_document, load_document
from .notifications import apply_states, generate_notifications, unread_count
from .schemas import DashboardFilterRequest
from .setup_sqlite import create_database, get_db_path

logger = logging.getLogger(__name__)

CENTS = Decimal('0.01')
TRANSACTION_LIMIT_CAP = 100
INCOME_GOAL_CATEGORIES = ('income', 'salary', 'renda', 'salario')
BALANCE_HISTORY_EPOCH = '2020-01-01'
DASHBOARD_HISTORY_MONTHS = 6

MONEY_FIELDS = {
    'balance', 'credit_limit', 'amount', 'initial_amount', 'current_amount',
    'expected_return', 'target_amount', 'confidence',
}
BOOL_FIELDS = {
    'is_active', 'is_paid', 'is_recurring', 'onboarding_completed', 'is_read', 'is_dismissed',
}
PRIVATE_USER_FIELDS = ('password', 'security_phrase')

EDITABLE_FIELDS = {
    'accounts': ('name', 'type', 'balance', 'credit_limit', 'closing_day', 'due_day', 'domain'),
    'categories': ('name', 'type', 'color', 'icon'),
    'transactions': ('account_id', 'category_id', 'title', 'amount', 'type', 'description',
                     'date', 'due_date', 'paid_date', 'is_paid', 'is_recurring',
                     'recurrence_type', 'recurrence_interval', 'recurrence_end_date',
                     'attachment_url'),
    'budgets': ('category_id', 'name', 'amount', 'period', 'start_date', 'end_date'),
    'investments': ('name', 'type', 'institution', 'initial_amount', 'current_amount',
                    'expected_return', 'start_date', 'maturity_date'),
    'financial_goals': ('name', 'target_amount', 'current_amount', 'target_date', 'category'),
    'ai_predictions': ('type', 'category_id', 'prediction_data', 'confidence',
                       'valid_from', 'valid_to'),
}

LIST_ORDER = {
    'accounts': 'name',
    'categories': 'name',
    'budgets': 'name',
    'investments': 'name',
    'financial_goals': 'target_date',
}

LABELS = {
    'accounts': 'Account',
    'categories': 'Category',
    'transactions': 'Transaction',
    'budgets': 'Budget',
    'investments': 'Investment',
    'financial_goals': 'Goal',
    'ai_predictions': 'Prediction',
}


class FinanceEngine:
    """
    Stateless personal finance engine.

    All state lives in the SQLite database at `db_path`; the schema is
    created on first use.

    Example:
        engine = FinanceEngine("/tmp/finance.db")
        ok, msg, user = engine.register_user("ana", "ana@example.com", "secret123")
        ok, account = engine.create_account(user['id'], {'name': 'Nubank', 'type': 'checking'})
    """

    def __init__(self, db_path=None, bcrypt_rounds=12):
        self.db_path = get_db_path(db_path)
        self.bcrypt_rounds = bcrypt_rounds
        if not self.db_path.exists():
            logger.info("Database not found at %s - creating fresh database", self.db_path)
        create_database(self.db_path)

    # =============================================================================
    # SQLITE HELPER METHODS
    # =============================================================================

    @staticmethod
    def _to_money_str(value):
        """Convert Decimal, float or numeric string to a 2-decimal TEXT value"""
        if value is None or value == '':
            return None
        return str(Decimal(str(value)).quantize(CENTS))

    @staticmethod
    def _from_money_str(value):
        """Convert string from SQLite to Decimal for calculations"""
        if value is None or value == '':
            return Decimal('0.00')
        return Decimal(str(value))

    @staticmethod
    def _to_bool_int(value):
        return 1 if value else 0

    @staticmethod
    def _to_datetime_str(dt):
        """Convert date/datetime objects to SQLite TEXT format"""
        if dt is None:
            return None
        if isinstance(dt, datetime.datetime):
            return dt.strftime('%Y-%m-%d %H:%M:%S')
        if isinstance(dt, datetime.date):
            return dt.strftime('%Y-%m-%d')
        return str(dt)

    @staticmethod
    def _now_str():
        return datetime.datetime.now().strftime('%Y-%m-%d %H:%M:%S')

    @staticmethod
    def _row_to_dict(row):
        """Convert sqlite3.Row to a dict, turning 0/1 flags back into bools"""
        if row is None:
            return None
        result = dict(row)
        for key in BOOL_FIELDS.intersection(result):
            if result[key] is not None:
                result[key] = bool(result[key])
        return result

    def _rows_to_dicts(self, rows):
        return [self._row_to_dict(row) for row in rows]

    def _prepare_values(self, data):
        """Convert API values (Decimal, bool, date) into their storage form"""
        prepared = {}
        for key, value in data.items():
            if key in MONEY_FIELDS:
                prepared[key] = self._to_money_str(value)
            elif key in BOOL_FIELDS:
                prepared[key] = self._to_bool_int(value)
            elif key == 'prediction_data' and not isinstance(value, str):
                prepared[key] = json.dumps(value)
            else:
                prepared[key] = self._to_datetime_str(value) if isinstance(value, datetime.date) else value
        return prepared

    # =============================================================================
    # DATABASE CONNECTION
    # =============================================================================

    def _get_db_connection(self):
        """
        Open a new connection with foreign keys on and Row factory set.

        Returns:
            tuple: (connection, cursor). Callers close both.
        """
        conn = sqlite3.connect(str(self.db_path))
        conn.execute("PRAGMA foreign_keys = ON;")
        conn.row_factory = sqlite3.Row
        return conn, conn.cursor()

    # =============================================================================
    # USER AUTHENTICATION METHODS
    # =============================================================================

    @staticmethod
    def _public_user(user):
        if user is None:
            return None
        return {key: value for key, value in user.items() if key not in PRIVATE_USER_FIELDS}

    def _hash_password(self, password):
        return bcrypt.hashpw(password.encode('utf-8'), bcrypt.gensalt(rounds=self.bcrypt_rounds)).decode('utf-8')

    def register_user(self, username, email, password, security_phrase=None):
        """
        Register a new user with a bcrypt-hashed password.

        Returns:
            tuple: (success bool, message str, user dict or None)
        """
        conn, cursor = self._get_db_connection()
        try:
            cursor.execute("SELECT id FROM users WHERE username = ?", (username,))
            if cursor.fetchone():
                return False, "Username already exists.", None

            cursor.execute("SELECT id FROM users WHERE email = ?", (email,))
            if cursor.fetchone():
                return False, "Email already exists.", None

            cursor.execute(
                "INSERT INTO users (username, email, password, security_phrase) VALUES (?, ?, ?, ?)",
                (username, email, self._hash_password(password), security_phrase)
            )
            new_user_id = cursor.lastrowid
            conn.commit()

            cursor.execute("SELECT * FROM users WHERE id = ?", (new_user_id,))
            user = self._public_user(self._row_to_dict(cursor.fetchone()))
            logger.info("Registered user %s (id=%s)", username, new_user_id)
            return True, "User registered successfully.", user
        except sqlite3.IntegrityError as e:
            conn.rollback()
            return False, f"User already exists: {e}", None
        finally:
            cursor.close()
            conn.close()

    def _authenticate(self, column, value, password):
        conn, cursor = self._get_db_connection()
        try:
            cursor.execute(f"SELECT * FROM users WHERE {column} = ? AND is_active = 1", (value,))
            user = self._row_to_dict(cursor.fetchone())
            if not user:
                return None

            if not bcrypt.checkpw(password.encode('utf-8'), user['password'].encode('utf-8')):
                return None

            user['last_login_at'] = self._now_str()
            cursor.execute("UPDATE users SET last_login_at = ? WHERE id = ?", (user['last_login_at'], user['id']))
            conn.commit()
            return self._public_user(user)
        finally:
            cursor.close()
            conn.close()

    def validate_user(self, username, password):
        """Check a username/password pair. Returns the user dict or None."""
        return self._authenticate('username', username, password)

    def validate_user_by_email(self, email, password):
        return self._authenticate('email', email, password)

    def get_user(self, user_id):
        conn, cursor = self._get_db_connection()
        try:
            cursor.execute("SELECT * FROM users WHERE id = ? AND is_active = 1", (user_id,))
            return self._public_user(self._row_to_dict(cursor.fetchone()))
        finally:
            cursor.close()
            conn.close()

    def reset_password(self, email, security_phrase, new_password):
        """
        Replace a password after checking the user's security phrase.

        Users without a stored phrase cannot reset.
        """
        conn, cursor = self._get_db_connection()
        try:
            cursor.execute("SELECT id, security_phrase FROM users WHERE email = ? AND is_active = 1", (email,))
            user = self._row_to_dict(cursor.fetchone())
            if not user or not user['security_phrase']:
                return False, "Invalid email or security phrase."
            if user['security_phrase'] != security_phrase:
                return False, "Invalid email or security phrase."

            cursor.execute("UPDATE users SET password = ? WHERE id = ?", (self._hash_password(new_password), user['id']))
            conn.commit()
            return True, "Password reset successfully."
        finally:
            cursor.close()
            conn.close()

    def mark_onboarding_completed(self, user_id):
        conn, cursor = self._get_db_connection()
        try:
            cursor.execute("UPDATE users SET onboarding_completed = 1 WHERE id = ?", (user_id,))
            conn.commit()
        finally:
            cursor.close()
            conn.close()
        return self.get_user(user_id)

    # =============================================================================
    # GENERIC ENTITY HELPERS
    # =============================================================================

    def _list_active(self, table, user_id):
        conn, cursor = self._get_db_connection()
        try:
            cursor.execute(
                f"SELECT * FROM {table} WHERE user_id = ? AND is_active = 1 ORDER BY {LIST_ORDER[table]}, id",
                (user_id,)
            )
            return self._rows_to_dicts(cursor.fetchall())
        finally:
            cursor.close()
            conn.close()

    def _fetch_one(self, cursor, table, user_id, entity_id):
        cursor.execute(f"SELECT * FROM {table} WHERE id = ? AND user_id = ?", (entity_id, user_id))
        return self._row_to_dict(cursor.fetchone())

    def _get_one(self, table, user_id, entity_id):
        conn, cursor = self._get_db_connection()
        try:
            return self._fetch_one(cursor, table, user_id, entity_id)
        finally:
            cursor.close()
            conn.close()

    def _insert_row(self, cursor, table, user_id, data):
        values = self._prepare_values({key: data[key] for key in EDITABLE_FIELDS[table] if key in data})
        columns = ['user_id'] + list(values)
        placeholders = ', '.join('?' for _ in columns)
        cursor.execute(
            f"INSERT INTO {table} ({', '.join(columns)}) VALUES ({placeholders})",
            [user_id] + list(values.values())
        )
        return cursor.lastrowid

    def _create(self, table, user_id, data):
        conn, cursor = self._get_db_connection()
        try:
            new_id = self._insert_row(cursor, table, user_id, data)
            conn.commit()
            return True, self._fetch_one(cursor, table, user_id, new_id)
        except sqlite3.IntegrityError as e:
            conn.rollback()
            return False, f"Failed to create {LABELS[table].lower()}: {e}"
        finally:
            cursor.close()
            conn.close()

    def _update(self, table, user_id, entity_id, data):
        conn, cursor = self._get_db_connection()
        try:
            if not self._fetch_one(cursor, table, user_id, entity_id):
                return False, f"{LABELS[table]} not found."

            values = self._prepare_values({key: data[key] for key in EDITABLE_FIELDS[table] if key in data})
            if values:
                # Build dynamic update query
                assignments = ', '.join(f"{column} = ?" for column in values)
                cursor.execute(
                    f"UPDATE {table} SET {assignments} WHERE id = ? AND user_id = ?",
                    list(values.values()) + [entity_id, user_id]
                )
                conn.commit()

            return True, self._fetch_one(cursor, table, user_id, entity_id)
        except sqlite3.IntegrityError as e:
            conn.rollback()
            return False, f"Failed to update {LABELS[table].lower()}: {e}"
        finally:
            cursor.close()
            conn.close()

    def _soft_delete(self, table, user_id, entity_id):
        conn, cursor = self._get_db_connection()
        try:
            cursor.execute(f"UPDATE {table} SET is_active = 0 WHERE id = ? AND user_id = ?", (entity_id, user_id))
            conn.commit()
            return True, f"{LABELS[table]} deleted."
        finally:
            cursor.close()
            conn.close()

    # =============================================================================
    # ACCOUNT MANAGEMENT
    # =============================================================================

    def get_accounts(self, user_id):
        """Active accounts ordered by name"""
        return self._list_active('accounts', user_id)

    def get_account(self, user_id, account_id):
        return self._get_one('accounts', user_id, account_id)

    def create_account(self, user_id, data):
        return self._create('accounts', user_id, data)

    def update_account(self, user_id, account_id, data):
        return self._update('accounts', user_id, account_id, data)

    def delete_account(self, user_id, account_id):
        return self._soft_delete('accounts', user_id, account_id)

    # =============================================================================
    # CATEGORY MANAGEMENT
    # =============================================================================

    def get_categories(self, user_id):
        return self._list_active('categories', user_id)

    def get_category(self, user_id, category_id):
        return self._get_one('categories', user_id, category_id)

    def create_category(self, user_id, data):
        return self._create('categories', user_id, data)

    def update_category(self, user_id, category_id, data):
        return self._update('categories', user_id, category_id, data)

    def delete_category(self, user_id, category_id):
        return self._soft_delete('categories', user_id, category_id)

    # =============================================================================
    # TRANSACTIONS
    # =============================================================================

    def get_transactions(self, user_id, limit=50, offset=0):
        """Newest first; `limit` is capped at 100."""
        limit = max(0, min(int(limit), TRANSACTION_LIMIT_CAP))
        offset = max(0, int(offset))
        conn, cursor = self._get_db_connection()
        try:
            cursor.execute("""
                SELECT * FROM transactions
                WHERE user_id = ?
                ORDER BY date DESC, id DESC
                LIMIT ? OFFSET ?
            """, (user_id, limit, offset))
            return self._rows_to_dicts(cursor.fetchall())
        finally:
            cursor.close()
            conn.close()

    def get_transaction(self, user_id, transaction_id):
        return self._get_one('transactions', user_id, transaction_id)

    def get_transactions_by_date_range(self, user_id, start_date, end_date):
        """Transactions dated within [start_date, end_date], newest first"""
        conn, cursor = self._get_db_connection()
        try:
            cursor.execute("""
                SELECT * FROM transactions
                WHERE user_id = ? AND date >= ? AND date <= ?
                ORDER BY date DESC, id DESC
            """, (user_id, self._to_datetime_str(start_date), self._to_datetime_str(end_date)))
            return self._rows_to_dicts(cursor.fetchall())
        finally:
            cursor.close()
            conn.close()

    def get_transactions_by_category(self, user_id, category_id):
        conn, cursor = self._get_db_connection()
        try:
            cursor.execute("""
                SELECT * FROM transactions
                WHERE user_id = ? AND category_id = ?
                ORDER BY date DESC, id DESC
            """, (user_id, category_id))
            return self._rows_to_dicts(cursor.fetchall())
        finally:
            cursor.close()
            conn.close()

    def _owns_active(self, cursor, table, user_id, entity_id):
        cursor.execute(
            f"SELECT id FROM {table} WHERE id = ? AND user_id = ? AND is_active = 1",
            (entity_id, user_id)
        )
        return cursor.fetchone() is not None

    def create_transaction(self, user_id, data):
        """
        Record a transaction and move the linked account's cached balance.

        Income adds the amount to the balance; expense and transfer subtract
        it. The insert and the balance update share one connection and one
        commit.

        Returns:
            tuple: (True, transaction dict) or (False, error message)
        """
        data = dict(data)
        data['amount'] = abs(self._from_money_str(data.get('amount')))

        conn, cursor = self._get_db_connection()
        try:
            if not self._owns_active(cursor, 'accounts', user_id, data.get('account_id')):
                return False, "Invalid account specified."
            if not self._owns_active(cursor, 'categories', user_id, data.get('category_id')):
                return False, "Invalid category specified."

            new_id = self._insert_row(cursor, 'transactions', user_id, data)

            cursor.execute("SELECT balance FROM accounts WHERE id = ?", (data['account_id'],))
            balance = self._from_money_str(cursor.fetchone()['balance'])
            if data.get('type') == 'income':
                balance += data['amount']
            else:
                balance -= data['amount']
            cursor.execute(
                "UPDATE accounts SET balance = ? WHERE id = ? AND user_id = ?",
                (self._to_money_str(balance), data['account_id'], user_id)
            )

            conn.commit()
            return True, self._fetch_one(cursor, 'transactions', user_id, new_id)
        except sqlite3.IntegrityError as e:
            conn.rollback()
            return False, f"Failed to create transaction: {e}"
        finally:
            cursor.close()
            conn.close()

    def update_transaction(self, user_id, transaction_id, data):
        """
        Partially update a transaction.

        The account balance is not re-synced here: the amount recorded at
        creation time stays applied to the original account.
        """
        data = dict(data)
        if data.get('amount') is not None:
            data['amount'] = abs(self._from_money_str(data['amount']))

        conn, cursor = self._get_db_connection()
        try:
            if 'account_id' in data and not self._owns_active(cursor, 'accounts', user_id, data['account_id']):
                return False, "Invalid account specified."
            if 'category_id' in data and not self._owns_active(cursor, 'categories', user_id, data['category_id']):
                return False, "Invalid category specified."
        finally:
            cursor.close()
            conn.close()

        return self._update('transactions', user_id, transaction_id, data)

    def delete_transaction(self, user_id, transaction_id):
        """Hard delete. The account balance is left as it is."""
        conn, cursor = self._get_db_connection()
        try:
            cursor.execute("DELETE FROM transactions WHERE id = ? AND user_id = ?", (transaction_id, user_id))
            conn.commit()
            return True, "Transaction deleted."
        finally:
            cursor.close()
            conn.close()

    def get_liquid_amount(self, user_id, start_date=None, end_date=None):
        """Income minus expenses over an optional inclusive date range."""
        query = "SELECT amount, type FROM transactions WHERE user_id = ?"
        params = [user_id]
        if start_date:
            query += " AND date >= ?"
            params.append(self._to_datetime_str(start_date))
        if end_date:
            query += " AND date <= ?"
            params.append(self._to_datetime_str(end_date))

        conn, cursor = self._get_db_connection()
        try:
            cursor.execute(query, params)
            rows = self._rows_to_dicts(cursor.fetchall())
        finally:
            cursor.close()
            conn.close()

        income = dashboard.total_income(rows)
        expenses = dashboard.total_expenses(rows)
        return {
            'liquid_amount': income - expenses,
            'total_income': income,
            'total_expenses': expenses,
            'transaction_count': len(rows),
        }

    # =========================================================================
    # BUDGET MANAGEMENT
    # =========================================================================

    @staticmethod
    def _period_bounds(period, today):
        if period == 'yearly':
            return datetime.date(today.year, 1, 1), datetime.date(today.year, 12, 31)
        return dashboard.month_start(today), dashboard.month_end(today)

    def _category_spend(self, cursor, user_id, category_id, start, end):
        cursor.execute("""
            SELECT amount FROM transactions
            WHERE user_id = ? AND category_id = ? AND type = 'expense'
              AND date >= ? AND date <= ?
        """, (user_id, category_id, start.isoformat(), end.isoformat()))
        return sum((abs(self._from_money_str(row['amount'])) for row in cursor.fetchall()), Decimal('0.00'))

    def _with_usage(self, cursor, user_id, budget, today):
        start, end = self._period_bounds(budget['period'], today)
        spent = self._category_spend(cursor, user_id, budget['category_id'], start, end)
        limit = self._from_money_str(budget['amount'])

        percentage = (spent / limit * 100) if limit > 0 else Decimal('0')
        budget['spent'] = spent
        budget['percentage'] = float(round(percentage, 2))
        budget['remaining'] = max(limit - spent, Decimal('0.00'))
        budget['is_over_budget'] = spent > limit
        budget['is_near_limit'] = percentage >= 80
        return budget

    def get_budgets(self, user_id, today=None):
        """Active budgets with spending for the current month (or year)"""
        today = today or datetime.date.today()
        budgets = self._list_active('budgets', user_id)
        conn, cursor = self._get_db_connection()
        try:
            return [self._with_usage(cursor, user_id, budget, today) for budget in budgets]
        finally:
            cursor.close()
            conn.close()

    def get_budget(self, user_id, budget_id, today=None):
        today = today or datetime.date.today()
        conn, cursor = self._get_db_connection()
        try:
            budget = self._fetch_one(cursor, 'budgets', user_id, budget_id)
            if budget is None:
                return None
            return self._with_usage(cursor, user_id, budget, today)
        finally:
            cursor.close()
            conn.close()

    def create_budget(self, user_id, data):
        if not self.get_category(user_id, data.get('category_id')):
            return False, "Invalid category specified."
        return self._create('budgets', user_id, data)

    def update_budget(self, user_id, budget_id, data):
        if 'category_id' in data and not self.get_category(user_id, data['category_id']):
            return False, "Invalid category specified."
        return self._update('budgets', user_id, budget_id, data)

    def delete_budget(self, user_id, budget_id):
        return self._soft_delete('budgets', user_id, budget_id)

    # =========================================================================
    # INVESTMENTS
    # =========================================================================

    def get_investments(self, user_id):
        return self._list_active('investments', user_id)

    def get_investment(self, user_id, investment_id):
        return self._get_one('investments', user_id, investment_id)

    def create_investment(self, user_id, data):
        return self._create('investments', user_id, data)

    def update_investment(self, user_id, investment_id, data):
        return self._update('investments', user_id, investment_id, data)

    def delete_investment(self, user_id, investment_id):
        return self._soft_delete('investments', user_id, investment_id)

    # =========================================================================
    # FINANCIAL GOALS
    # =========================================================================

    def get_financial_goals(self, user_id):
        """Active goals, nearest target date first"""
        return self._list_active('financial_goals', user_id)

    def get_financial_goal(self, user_id, goal_id):
        return self._get_one('financial_goals', user_id, goal_id)

    def create_financial_goal(self, user_id, data):
        return self._create('financial_goals', user_id, data)

    def update_financial_goal(self, user_id, goal_id, data):
        return self._update('financial_goals', user_id, goal_id, data)

    def delete_financial_goal(self, user_id, goal_id):
        return self._soft_delete('financial_goals', user_id, goal_id)

    # =========================================================================
    # AI PREDICTIONS
    # =========================================================================

    def get_ai_predictions(self, user_id):
        conn, cursor = self._get_db_connection()
        try:
            cursor.execute("""
                SELECT * FROM ai_predictions
                WHERE user_id = ? AND is_active = 1
                ORDER BY created_at DESC, id DESC
            """, (user_id,))
            predictions = self._rows_to_dicts(cursor.fetchall())
        finally:
            cursor.close()
            conn.close()

        for prediction in predictions:
            prediction['prediction_data'] = json.loads(prediction['prediction_data'])
        return predictions

    def create_ai_prediction(self, user_id, data):
        return self._create('ai_predictions', user_id, data)

    # =========================================================================
    # NOTIFICATIONS
    # =========================================================================

    def get_notification_states(self, user_id):
        conn, cursor = self._get_db_connection()
        try:
            cursor.execute(
                "SELECT * FROM user_notification_states WHERE user_id = ? ORDER BY id",
                (user_id,)
            )
            return self._rows_to_dicts(cursor.fetchall())
        finally:
            cursor.close()
            conn.close()

    def _upsert_notification_state(self, user_id, notification_id, flag, stamp_column):
        stamp = self._now_str()
        conn, cursor = self._get_db_connection()
        try:
            cursor.execute(f"""
                INSERT INTO user_notification_states (user_id, notification_id, {flag}, {stamp_column})
                VALUES (?, ?, 1, ?)
                ON CONFLICT(user_id, notification_id)
                DO UPDATE SET {flag} = 1, {stamp_column} = excluded.{stamp_column}
            """, (user_id, notification_id, stamp))
            conn.commit()
            cursor.execute(
                "SELECT * FROM user_notification_states WHERE user_id = ? AND notification_id = ?",
                (user_id, notification_id)
            )
            return self._row_to_dict(cursor.fetchone())
        finally:
            cursor.close()
            conn.close()

    def mark_notification_read(self, user_id, notification_id):
        return self._upsert_notification_state(user_id, notification_id, 'is_read', 'read_at')

    def mark_notification_dismissed(self, user_id, notification_id):
        return self._upsert_notification_state(user_id, notification_id, 'is_dismissed', 'dismissed_at')

    def mark_all_notifications_read(self, user_id, now=None):
        """
        Flag every stored unread state and every currently generated
        notification as read.

        Returns:
            int: number of states inserted or flipped to read
        """
        now = now or datetime.datetime.now()
        stamp = self._to_datetime_str(now)
        generated = self._generate_notifications(user_id, now.date())

        conn, cursor = self._get_db_connection()
        try:
            cursor.execute("""
                UPDATE user_notification_states
                SET is_read = 1, read_at = ?
                WHERE user_id = ? AND is_read = 0
            """, (stamp, user_id))
            updated = cursor.rowcount

            for notification in generated:
                cursor.execute("""
                    INSERT INTO user_notification_states (user_id, notification_id, is_read, read_at)
                    VALUES (?, ?, 1, ?)
                    ON CONFLICT(user_id, notification_id)
                    DO UPDATE SET is_read = 1, read_at = excluded.read_at
                    WHERE user_notification_states.is_read = 0
                """, (user_id, notification['id'], stamp))
                updated += cursor.rowcount

            conn.commit()
            return updated
        finally:
            cursor.close()
            conn.close()

    def _generate_notifications(self, user_id, today):
        conn, cursor = self._get_db_connection()
        try:
            cursor.execute("SELECT * FROM transactions WHERE user_id = ? ORDER BY date DESC, id DESC", (user_id,))
            transactions = self._rows_to_dicts(cursor.fetchall())
        finally:
            cursor.close()
            conn.close()

        return generate_notifications(
            budgets=self._list_active('budgets', user_id),
            accounts=self.get_accounts(user_id),
            transactions=transactions,
            investments=self.get_investments(user_id),
            goals=self.get_financial_goals(user_id),
            today=today,
        )

    def get_notifications(self, user_id, now=None):
        """Generate the user's notifications and overlay persisted state."""
        now = now or datetime.datetime.now()
        generated = self._generate_notifications(user_id, now.date())
        notifications = apply_states(generated, self.get_notification_states(user_id), now)
        return {'notifications': notifications, 'unread_count': unread_count(notifications)}

    # =========================================================================
    # DASHBOARD
    # =========================================================================

    def get_dashboard_data(self, user_id, today=None):
        """
        Unfiltered dashboard: current-month totals, balances, upcoming bills,
        per-category spend and six months of cumulative balance history.
        """
        today = today or datetime.date.today()
        first, last = dashboard.month_start(today), dashboard.month_end(today)
        horizon = today + datetime.timedelta(days=dashboard.UPCOMING_WINDOW_DAYS)

        conn, cursor = self._get_db_connection()
        try:
            cursor.execute(
                "SELECT id, type, balance FROM accounts WHERE user_id = ? AND is_active = 1",
                (user_id,)
            )
            total_balance = dashboard.total_balance(self._rows_to_dicts(cursor.fetchall()))

            cursor.execute("""
                SELECT * FROM transactions
                WHERE user_id = ? AND date >= ? AND date <= ?
                ORDER BY date DESC, id DESC
            """, (user_id, first.isoformat(), last.isoformat()))
            month_rows = self._rows_to_dicts(cursor.fetchall())

            cursor.execute(
                "SELECT initial_amount, current_amount FROM investments WHERE user_id = ? AND is_active = 1",
                (user_id,)
            )
            total_investments = sum(
                (self._from_money_str(row['current_amount'] if row['current_amount'] is not None else row['initial_amount'])
                 for row in cursor.fetchall()),
                Decimal('0.00')
            )

            cursor.execute("""
                SELECT * FROM transactions
                WHERE user_id = ? AND is_paid = 0 AND due_date >= ? AND due_date <= ?
                ORDER BY due_date ASC, id ASC
                LIMIT ?
            """, (user_id, today.isoformat(), horizon.isoformat(), dashboard.UPCOMING_LIMIT))
            upcoming_bills = self._rows_to_dicts(cursor.fetchall())

            # Open-ended: anything dated from the first of the month on
            cursor.execute("""
                SELECT category_id, amount, type FROM transactions
                WHERE user_id = ? AND type = 'expense' AND date >= ?
            """, (user_id, first.isoformat()))
            expense_rows = self._rows_to_dicts(cursor.fetchall())

            cursor.execute("""
                SELECT id, name, color FROM categories
                WHERE user_id = ? AND is_active = 1 AND type = 'expense'
                ORDER BY name
            """, (user_id,))
            expenses_by_category = []
            for category in cursor.fetchall():
                spent = dashboard.total_expenses(
                    [tx for tx in expense_rows if tx['category_id'] == category['id']]
                )
                if spent > 0:
                    expenses_by_category.append({
                        'category': category['name'],
                        'amount': spent,
                        'color': category['color'],
                    })
            expenses_by_category.sort(key=lambda entry: entry['amount'], reverse=True)

            cursor.execute("""
                SELECT date, amount, type FROM transactions
                WHERE user_id = ? AND date >= ? AND date <= ?
            """, (user_id, BALANCE_HISTORY_EPOCH, last.isoformat()))
            history_rows = self._rows_to_dicts(cursor.fetchall())
            balance_history = []
            for month_first in dashboard.last_months(today, DASHBOARD_HISTORY_MONTHS):
                cutoff = dashboard.month_end(month_first).isoformat()
                balance = sum(
                    (dashboard.signed_amount(tx) for tx in history_rows if tx['date'][:10] <= cutoff),
                    Decimal('0.00')
                )
                balance_history.append({'month': month_first.strftime('%b'), 'balance': balance})

            cursor.execute(
                "SELECT amount FROM budgets WHERE user_id = ? AND is_active = 1 AND period = 'monthly'",
                (user_id,)
            )
            monthly_budget_limit = sum((self._from_money_str(row['amount']) for row in cursor.fetchall()), Decimal('0.00'))

            placeholders = ', '.join('?' for _ in INCOME_GOAL_CATEGORIES)
            cursor.execute(f"""
                SELECT target_amount FROM financial_goals
                WHERE user_id = ? AND is_active = 1 AND LOWER(category) IN ({placeholders})
            """, (user_id, *INCOME_GOAL_CATEGORIES))
            monthly_income_goal = sum((self._from_money_str(row['target_amount']) for row in cursor.fetchall()), Decimal('0.00'))
        finally:
            cursor.close()
            conn.close()

        return {
            'total_balance': total_balance,
            'monthly_income': dashboard.total_income(month_rows),
            'monthly_expenses': dashboard.total_expenses(month_rows),
            'total_investments': total_investments,
            'upcoming_bills': upcoming_bills,
            'expenses_by_category': expenses_by_category,
            'balance_history': balance_history,
            'monthly_budget_limit': monthly_budget_limit,
            'monthly_income_goal': monthly_income_goal,
        }

    def get_filtered_dashboard_data(self, user_id, filters=None, today=None):
        """
        Dashboard aggregate narrowed by the client filters.

        Args:
            user_id: owner of the data
            filters: DashboardFilterRequest, or a dict in its camelCase/snake_case shape
            today: reference date (defaults to the current date)

        Returns:
            dict: see dashboard.summarize()
        """
        if not isinstance(filters, DashboardFilterRequest):
            filters = DashboardFilterRequest.model_validate(filters or {})
        today = today or datetime.date.today()

        conn, cursor = self._get_db_connection()
        try:
            cursor.execute("""
                SELECT t.*,
                       c.name AS category_name, c.color AS category_color,
                       a.name AS account_name, a.type AS account_type
                FROM transactions t
                LEFT JOIN categories c ON t.category_id = c.id
                LEFT JOIN accounts a ON t.account_id = a.id
                WHERE t.user_id = ?
                ORDER BY t.date DESC, t.id DESC
            """, (user_id,))
            transactions = self._rows_to_dicts(cursor.fetchall())

            # Every row, soft-deleted ones included
            cursor.execute("SELECT * FROM accounts WHERE user_id = ? ORDER BY name, id", (user_id,))
            accounts = self._rows_to_dicts(cursor.fetchall())
            cursor.execute("SELECT * FROM investments WHERE user_id = ? ORDER BY name, id", (user_id,))
            investments = self._rows_to_dicts(cursor.fetchall())
        finally:
            cursor.close()
            conn.close()

        return dashboard.summarize(
            transactions,
            accounts,
            investments,
            filters,
            today,
        )

    # =========================================================================
    # DATA MANAGEMENT
    # =========================================================================

    @staticmethod
    def _clear_rows(cursor, user_id):
        # Children first so foreign keys never dangle
        for table in ('ai_predictions', 'financial_goals', 'investments', 'budgets',
                      'transactions', 'categories', 'accounts'):
            cursor.execute(f"DELETE FROM {table} WHERE user_id = ?", (user_id,))

    def clear_all_data(self, user_id):
        """Delete every financial row the user owns. The user itself stays."""
        conn, cursor = self._get_db_connection()
        try:
            self._clear_rows(cursor, user_id)
            conn.commit()
            logger.info("[BACKUP] Cleared all data for user %s", user_id)
            return True, "All data cleared."
        finally:
            cursor.close()
            conn.close()

    def export_backup(self, user_id):
        """Return a JSON-serializable backup document of all the user's rows."""
        conn, cursor = self._get_db_connection()
        try:
            tables = {}
            for table in BACKUP_TABLES:
                cursor.execute(f"SELECT * FROM {table} WHERE user_id = ? ORDER BY id", (user_id,))
                rows = [dict(row) for row in cursor.fetchall()]
                for row in rows:
                    row.pop('user_id', None)
                tables[table] = rows
        finally:
            cursor.close()
            conn.close()

        logger.info("[BACKUP] Exported %d transactions for user %s", len(tables['transactions']), user_id)
        return build_document(user_id, tables, self._now_str())

    def _restore_row(self, cursor, table, user_id, row, id_maps):
        values = {column: row.get(column) for column in BACKUP_COLUMNS[table] if column in row}

        for column, source in (('category_id', 'categories'), ('account_id', 'accounts')):
            if column not in values:
                continue
            old_id = values[column]
            if old_id is None and table == 'ai_predictions':
                continue
            if old_id not in id_maps[source]:
                if table == 'ai_predictions':
                    values[column] = None
                    continue
                raise BackupError(f"{LABELS[table]} {row.get('id')} references unknown {column} {old_id}.")
            values[column] = id_maps[source][old_id]

        if table == 'transactions' and values.get('amount') is not None:
            values['amount'] = abs(self._from_money_str(values['amount']))

        values = self._prepare_values(values)
        columns = ['user_id'] + list(values)
        cursor.execute(
            f"INSERT INTO {table} ({', '.join(columns)}) VALUES ({', '.join('?' for _ in columns)})",
            [user_id] + list(values.values())
        )
        return cursor.lastrowid

    def import_backup(self, user_id, payload):
        """
        Replace the user's data with the contents of a backup document.

        The wipe and every insert run in one SQLite transaction: any failure
        leaves the existing data untouched.

        Returns:
            dict: number of rows restored per table

        Raises:
            BackupError: invalid document or rows that cannot be restored
        """
        document = load_document(payload)
        data = document['data']
        id_maps = {table: {} for table in BACKUP_TABLES}
        counts = {}

        conn, cursor = self._get_db_connection()
        try:
            self._clear_rows(cursor, user_id)
            for table in BACKUP_TABLES:
                rows = data.get(table, [])
                for row in rows:
                    new_id = self._restore_row(cursor, table, user_id, row, id_maps)
                    if 'id' in row:
                        id_maps[table][row['id']] = new_id
                counts[table] = len(rows)
            conn.commit()
        except BackupError:
            conn.rollback()
            raise
        except (sqlite3.Error, ValueError, ArithmeticError) as e:
            conn.rollback()
            raise BackupError(f"Backup could not be restored: {e}") from e
        finally:
            cursor.close()
            conn.close()

        logger.info("[BACKUP] Imported backup for user %s: %s", user_id, counts)
        return counts
