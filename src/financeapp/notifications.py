"""
FinanceApp - Notification Generator

Notifications are synthesized from the user's current data on every request
and never stored. Only the per-id read/dismiss flags persist (table
user_notification_states), and they are merged in by apply_states().

Rules:
- Budgets: current-month spend >= 100% -> exceeded, >= 80% -> warning
- Credit cards: utilization >= 90% -> critical, >= 70% -> elevated
- Large expense: biggest expense of the last 7 days when above 1000
- Investments: return <= -10% -> loss, >= 15% -> gain
- Goals: progress >= 100% -> completed, >= 75% -> almost there
- Backup reminder: always generated; re-shown 7 days after a dismissal
"""

import datetime
from decimal import Decimal

from .dashboard import month_end, month_start, to_date, to_decimal

BACKUP_REMINDER_ID = 'system-backup-reminder'
BACKUP_REMINDER_INTERVAL_DAYS = 7

LARGE_EXPENSE_THRESHOLD = Decimal('1000')
LARGE_EXPENSE_WINDOW_DAYS = 7

PRIORITY_WEIGHT = {'high': 3, 'medium': 2, 'low': 1}


def _percent(part, whole):
    if whole <= 0:
        return Decimal('0')
    return part / whole * 100


def _notification(notification_id, kind, priority, category, title, message, timestamp,
                  action_url, metadata=None):
    return {
        'id': notification_id,
        'type': kind,
        'priority': priority,
        'category': category,
        'title': title,
        'message': message,
        'timestamp': timestamp,
        'is_read': False,
        'action_url': action_url,
        'metadata': metadata or {},
    }


# =============================================================================
# RULES
# =============================================================================

def budget_alerts(budgets, transactions, today):
    first, last = month_start(today), month_end(today)
    stamp = today.isoformat()
    alerts = []

    for budget in budgets:
        spent = Decimal('0')
        for tx in transactions:
            if tx['type'] != 'expense' or tx['category_id'] != budget['category_id']:
                continue
            tx_date = to_date(tx['date'])
            if tx_date and first <= tx_date <= last:
                spent += abs(to_decimal(tx['amount']))

        amount = to_decimal(budget['amount'])
        percentage = _percent(spent, amount)
        metadata = {'budget_id': budget['id'], 'percentage': float(round(percentage, 1))}

        if percentage >= 100:
            over = _percent(spent - amount, amount)
            alerts.append(_notification(
                f"budget-exceeded-{budget['id']}", 'error', 'high', 'budget',
                'Orçamento Excedido',
                f"O orçamento \"{budget['name']}\" foi excedido em {over:.1f}%",
                stamp, '/budgets', metadata,
            ))
        elif percentage >= 80:
            alerts.append(_notification(
                f"budget-warning-{budget['id']}", 'warning', 'medium', 'budget',
                'Orçamento Próximo do Limite',
                f"O orçamento \"{budget['name']}\" atingiu {percentage:.1f}% do limite",
                stamp, '/budgets', metadata,
            ))
    return alerts


def credit_card_alerts(accounts, today):
    stamp = today.isoformat()
    alerts = []

    for card in accounts:
        if card['type'] != 'credit_card':
            continue
        limit = to_decimal(card.get('credit_limit'))
        utilization = _percent(abs(to_decimal(card['balance'])), limit)
        metadata = {'account_id': card['id'], 'utilization': float(round(utilization, 1))}

        if utilization >= 90:
            alerts.append(_notification(
                f"credit-limit-{card['id']}", 'error', 'high', 'credit',
                'Limite de Cartão Crítico',
                f"O cartão {card['name']} está com {utilization:.1f}% do limite utilizado",
                stamp, '/accounts', metadata,
            ))
        elif utilization >= 70:
            alerts.append(_notification(
                f"credit-warning-{card['id']}", 'warning', 'medium', 'credit',
                'Limite de Cartão Elevado',
                f"O cartão {card['name']} está com {utilization:.1f}% do limite utilizado",
                stamp, '/accounts', metadata,
            ))
    return alerts


def large_expense_alert(transactions, today):
    window_start = today - datetime.timedelta(days=LARGE_EXPENSE_WINDOW_DAYS)
    largest = None

    for tx in transactions:
        if tx['type'] != 'expense':
            continue
        tx_date = to_date(tx['date'])
        if tx_date is None or not (window_start <= tx_date <= today):
            continue
        if largest is None or abs(to_decimal(tx['amount'])) > abs(to_decimal(largest['amount'])):
            largest = tx

    if largest is None:
        return []

    amount = abs(to_decimal(largest['amount']))
    if amount <= LARGE_EXPENSE_THRESHOLD:
        return []

    return [_notification(
        f"large-expense-{largest['id']}", 'info', 'medium', 'transaction',
        'Transação Grande Detectada',
        f"Despesa de R$ {amount:,.2f} foi registrada",
        to_date(largest['date']).isoformat(), '/transactions',
        {'transaction_id': largest['id'], 'amount': str(amount)},
    )]


def investment_alerts(investments, today):
    stamp = today.isoformat()
    alerts = []

    for investment in investments:
        initial = to_decimal(investment['initial_amount'])
        if initial <= 0 or investment.get('current_amount') in (None, ''):
            continue
        current = to_decimal(investment['current_amount'])
        change = _percent(current - initial, initial)
        metadata = {'investment_id': investment['id'], 'return_percentage': float(round(change, 1))}

        if change <= -10:
            alerts.append(_notification(
                f"investment-loss-{investment['id']}", 'warning', 'medium', 'investment',
                'Investimento em Queda',
                f"{investment['name']} teve queda de {abs(change):.1f}%",
                stamp, '/investments', metadata,
            ))
        elif change >= 15:
            alerts.append(_notification(
                f"investment-gain-{investment['id']}", 'success', 'low', 'investment',
                'Investimento em Alta',
                f"{investment['name']} teve ganho de {change:.1f}%",
                stamp, '/investments', metadata,
            ))
    return alerts


def goal_alerts(goals, today):
    stamp = today.isoformat()
    alerts = []

    for goal in goals:
        progress = _percent(to_decimal(goal['current_amount']), to_decimal(goal['target_amount']))
        metadata = {'goal_id': goal['id'], 'progress': float(round(progress, 1))}

        if progress >= 100:
            alerts.append(_notification(
                f"goal-completed-{goal['id']}", 'success', 'high', 'goal',
                'Meta Atingida!',
                f"Parabéns! Você atingiu a meta \"{goal['name']}\"",
                stamp, '/budgets', metadata,
            ))
        elif progress >= 75:
            alerts.append(_notification(
                f"goal-progress-{goal['id']}", 'info', 'low', 'goal',
                'Meta Quase Concluída',
                f"Você está a {100 - progress:.1f}% de atingir \"{goal['name']}\"",
                stamp, '/budgets', metadata,
            ))
    return alerts


def backup_reminder(today):
    return _notification(
        BACKUP_REMINDER_ID, 'info', 'low', 'system',
        'Lembrete de Backup',
        'Faça backup regular dos seus dados financeiros para manter suas informações seguras',
        today.isoformat(), '/settings',
        {'type': 'recurring', 'interval': BACKUP_REMINDER_INTERVAL_DAYS},
    )


# =============================================================================
# ASSEMBLY
# =============================================================================

def sort_notifications(notifications):
    """High priority first, then newest timestamp; id breaks ties."""
    ordered = sorted(notifications, key=lambda n: n['id'])
    ordered.sort(key=lambda n: n['timestamp'], reverse=True)
    ordered.sort(key=lambda n: PRIORITY_WEIGHT[n['priority']], reverse=True)
    return ordered


def generate_notifications(budgets, accounts, transactions, investments, goals, today):
    """Run every rule against the user's data and return sorted notifications."""
    notifications = []
    notifications.extend(budget_alerts(budgets, transactions, today))
    notifications.extend(credit_card_alerts(accounts, today))
    notifications.extend(large_expense_alert(transactions, today))
    notifications.extend(investment_alerts(investments, today))
    notifications.extend(goal_alerts(goals, today))
    notifications.append(backup_reminder(today))
    return sort_notifications(notifications)


def apply_states(notifications, states, now):
    """
    Overlay persisted read/dismiss flags onto generated notifications.

    Dismissed ids are dropped. The backup reminder comes back once its
    dismissal is older than BACKUP_REMINDER_INTERVAL_DAYS.
    """
    by_id = {state['notification_id']: state for state in states}
    merged = []

    for notification in notifications:
        state = by_id.get(notification['id'])
        if state is None:
            merged.append(notification)
            continue

        if state['is_dismissed']:
            if notification['id'] != BACKUP_REMINDER_ID:
                continue
            dismissed_at = to_date(state.get('dismissed_at'))
            if dismissed_at and (now.date() - dismissed_at).days < BACKUP_REMINDER_INTERVAL_DAYS:
                continue
            merged.append(dict(notification, is_read=False))
            continue

        merged.append(dict(notification, is_read=bool(state['is_read'])))

    return merged


def unread_count(notifications):
    return sum(1 for n in notifications if not n['is_read'])
