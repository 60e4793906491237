"""
FinanceApp - Dashboard Aggregation

Pure functions behind the dashboard. The engine loads rows from SQLite and
hands them here; nothing in this module touches the database, so the
filter and metric rules can be exercised directly.

Transaction rows are dicts as returned by FinanceEngine (money as TEXT
strings, dates as 'YYYY-MM-DD'), optionally joined with `category_name`
and `category_color`.

Sign convention: amounts are positive magnitudes and `type` carries the
direction. Expense sides still go through abs() so legacy signed rows
aggregate the same way.
"""

import datetime
from decimal import Decimal

UNCATEGORIZED_LABEL = "Outros"
UNCATEGORIZED_COLOR = "#6B7280"

DEFAULT_LOOKBACK_DAYS = 360
HISTORY_MONTHS = 12
UPCOMING_WINDOW_DAYS = 7
UPCOMING_LIMIT = 5

ZERO = Decimal('0.00')


# =============================================================================
# VALUE HELPERS
# =============================================================================

def to_decimal(value):
    if value is None or value == '':
        return ZERO
    return Decimal(str(value))


def to_date(value):
    """Parse 'YYYY-MM-DD' (or a longer timestamp) into a date."""
    if value is None or value == '':
        return None
    if isinstance(value, datetime.datetime):
        return value.date()
    if isinstance(value, datetime.date):
        return value
    return datetime.datetime.strptime(str(value)[:10], '%Y-%m-%d').date()


def month_start(day):
    return day.replace(day=1)


def month_end(day):
    first = month_start(day)
    return shift_month(first, 1) - datetime.timedelta(days=1)


def shift_month(first_of_month, months):
    """Move a first-of-month date by a number of calendar months."""
    index = first_of_month.year * 12 + (first_of_month.month - 1) + months
    return datetime.date(index // 12, index % 12 + 1, 1)


def last_months(end, count):
    """First days of the `count` calendar months ending at `end`, oldest first."""
    current = month_start(end)
    return [shift_month(current, -offset) for offset in range(count - 1, -1, -1)]


def signed_amount(tx):
    """Income adds, anything else subtracts its magnitude."""
    amount = to_decimal(tx['amount'])
    if tx['type'] == 'income':
        return amount
    return -abs(amount)


# =============================================================================
# FILTERING
# =============================================================================

def transaction_matches(tx, filters):
    """Return True when a transaction passes every active predicate."""
    if filters.has_date_range:
        tx_date = to_date(tx['date'])
        if tx_date is None or tx_date < filters.start_date or tx_date > filters.end_date:
            return False

    if filters.accounts and tx['account_id'] not in filters.accounts:
        return False

    if filters.categories and tx['category_id'] not in filters.categories:
        return False

    if filters.transaction_types and tx['type'] not in filters.transaction_types:
        return False

    magnitude = abs(to_decimal(tx['amount']))
    if filters.min_amount is not None and magnitude < filters.min_amount:
        return False
    if filters.max_amount is not None and magnitude > filters.max_amount:
        return False

    return True


def filter_transactions(transactions, filters):
    return [tx for tx in transactions if transaction_matches(tx, filters)]


# =============================================================================
# METRICS
# =============================================================================

def total_income(transactions):
    return sum((to_decimal(tx['amount']) for tx in transactions if tx['type'] == 'income'), ZERO)


def total_expenses(transactions):
    return abs(sum((to_decimal(tx['amount']) for tx in transactions if tx['type'] == 'expense'), ZERO))


def total_balance(accounts, account_ids=None):
    """Sum of non-credit-card balances, optionally narrowed to `account_ids`."""
    total = ZERO
    for account in accounts:
        if account['type'] == 'credit_card':
            continue
        if account_ids and account['id'] not in account_ids:
            continue
        total += to_decimal(account['balance'])
    return total


def total_investments(investments, include=True):
    if not include:
        return ZERO
    return sum((to_decimal(inv['initial_amount']) for inv in investments), ZERO)


def expenses_by_category(transactions):
    """Group expense magnitudes by category name, largest first."""
    grouped = {}
    for tx in transactions:
        if tx['type'] != 'expense':
            continue
        name = tx.get('category_name') or UNCATEGORIZED_LABEL
        entry = grouped.setdefault(name, {
            'category': name,
            'amount': ZERO,
            'color': tx.get('category_color') or UNCATEGORIZED_COLOR,
        })
        entry['amount'] += abs(to_decimal(tx['amount']))

    return sorted(grouped.values(), key=lambda entry: entry['amount'], reverse=True)


def balance_history(transactions, end, start, months=HISTORY_MONTHS, label_format="%b %Y"):
    """
    Net flow per calendar month for the `months` months ending at `end`.

    A month is kept only when its first day falls on or after `start`.
    """
    net_by_month = {}
    for tx in transactions:
        tx_date = to_date(tx['date'])
        if tx_date is None:
            continue
        key = tx_date.strftime('%Y-%m')
        net_by_month[key] = net_by_month.get(key, ZERO) + signed_amount(tx)

    history = []
    for first in last_months(end, months):
        if first < start:
            continue
        history.append({
            'month': first.strftime(label_format),
            'balance': net_by_month.get(first.strftime('%Y-%m'), ZERO),
        })
    return history


def upcoming_bills(transactions, today, window_days=UPCOMING_WINDOW_DAYS, limit=UPCOMING_LIMIT):
    """Unpaid transactions due within the next `window_days`, in input order."""
    horizon = today + datetime.timedelta(days=window_days)
    bills = []
    for tx in transactions:
        due = to_date(tx.get('due_date'))
        if due is None or tx.get('is_paid'):
            continue
        if today <= due <= horizon:
            bills.append(tx)
            if len(bills) == limit:
                break
    return bills


def summarize(transactions, accounts, investments, filters, today):
    """
    Build the filtered dashboard aggregate.

    Args:
        transactions: all of the user's transaction rows, newest first
        accounts: the user's active accounts
        investments: the user's active investments
        filters: DashboardFilterRequest
        today: reference date for the history window and upcoming bills

    Returns:
        dict with total_balance, monthly_income, monthly_expenses,
        total_investments, upcoming_bills, expenses_by_category and
        balance_history. Impossible filters produce zeros and empty lists.
    """
    filtered = filter_transactions(transactions, filters)

    end = filters.end_date or today
    start = filters.start_date or (today - datetime.timedelta(days=DEFAULT_LOOKBACK_DAYS))

    return {
        'total_balance': total_balance(accounts, filters.accounts),
        'monthly_income': total_income(filtered),
        'monthly_expenses': total_expenses(filtered),
        'total_investments': total_investments(investments, filters.include_investments),
        'upcoming_bills': upcoming_bills(filtered, today),
        'expenses_by_category': expenses_by_category(filtered),
        'balance_history': balance_history(filtered, end, start),
    }
