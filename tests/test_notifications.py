import datetime

from financeapp import notifications

TODAY = datetime.date(2025, 6, 15)
NOW = datetime.datetime(2025, 6, 15, 9, 30)


def expense(id, amount, category_id=1, date='2025-06-10'):
    return {'id': id, 'amount': amount, 'type': 'expense', 'category_id': category_id, 'date': date}


def generate(budgets=(), accounts=(), transactions=(), investments=(), goals=()):
    return notifications.generate_notifications(
        list(budgets), list(accounts), list(transactions), list(investments), list(goals), TODAY
    )


def ids(items):
    return [n['id'] for n in items]


def test_budget_thresholds():
    budgets = [
        {'id': 1, 'name': 'Food', 'category_id': 1, 'amount': '500.00'},
        {'id': 2, 'name': 'Fuel', 'category_id': 2, 'amount': '100.00'},
        {'id': 3, 'name': 'Fun', 'category_id': 3, 'amount': '100.00'},
    ]
    transactions = [
        expense(1, '520.00', 1),
        expense(2, '85.00', 2),
        expense(3, '79.00', 3),
        expense(4, '900.00', 3, date='2025-05-31'),
    ]

    result = notifications.budget_alerts(budgets, transactions, TODAY)

    assert ids(result) == ['budget-exceeded-1', 'budget-warning-2']
    exceeded = result[0]
    assert exceeded['type'] == 'error' and exceeded['priority'] == 'high'
    assert 'excedido em 4.0%' in exceeded['message']


def test_credit_card_thresholds():
    accounts = [
        {'id': 1, 'name': 'Card A', 'type': 'credit_card', 'balance': '-950.00', 'credit_limit': '1000.00'},
        {'id': 2, 'name': 'Card B', 'type': 'credit_card', 'balance': '-700.00', 'credit_limit': '1000.00'},
        {'id': 3, 'name': 'Card C', 'type': 'credit_card', 'balance': '-100.00', 'credit_limit': '1000.00'},
        {'id': 4, 'name': 'No limit', 'type': 'credit_card', 'balance': '-100.00', 'credit_limit': None},
        {'id': 5, 'name': 'Checking', 'type': 'checking', 'balance': '-5000.00', 'credit_limit': None},
    ]

    result = notifications.credit_card_alerts(accounts, TODAY)

    assert ids(result) == ['credit-limit-1', 'credit-warning-2']


def test_large_expense_uses_last_week_and_threshold():
    transactions = [
        expense(1, '1500.00', date='2025-06-01'),
        expense(2, '1200.00', date='2025-06-12'),
        expense(3, '1100.00', date='2025-06-14'),
        {'id': 4, 'amount': '9000.00', 'type': 'income', 'category_id': 9, 'date': '2025-06-14'},
    ]

    [alert] = notifications.large_expense_alert(transactions, TODAY)

    assert alert['id'] == 'large-expense-2'
    assert alert['timestamp'] == '2025-06-12'
    assert notifications.large_expense_alert([expense(1, '1000.00', date='2025-06-14')], TODAY) == []


def test_investment_thresholds():
    investments = [
        {'id': 1, 'name': 'Stocks', 'initial_amount': '1000.00', 'current_amount': '850.00'},
        {'id': 2, 'name': 'Fund', 'initial_amount': '1000.00', 'current_amount': '1200.00'},
        {'id': 3, 'name': 'CDB', 'initial_amount': '1000.00', 'current_amount': '1050.00'},
        {'id': 4, 'name': 'Unpriced', 'initial_amount': '1000.00', 'current_amount': None},
    ]

    result = notifications.investment_alerts(investments, TODAY)

    assert ids(result) == ['investment-loss-1', 'investment-gain-2']
    assert result[1]['type'] == 'success'


def test_goal_thresholds():
    goals = [
        {'id': 1, 'name': 'Car', 'target_amount': '100.00', 'current_amount': '100.00'},
        {'id': 2, 'name': 'Trip', 'target_amount': '100.00', 'current_amount': '80.00'},
        {'id': 3, 'name': 'House', 'target_amount': '100.00', 'current_amount': '10.00'},
    ]

    assert ids(notifications.goal_alerts(goals, TODAY)) == ['goal-completed-1', 'goal-progress-2']


def test_sorted_by_priority_then_newest():
    result = generate(
        goals=[{'id': 2, 'name': 'Trip', 'target_amount': '100.00', 'current_amount': '80.00'}],
        transactions=[expense(7, '1500.00', date='2025-06-10')],
        accounts=[{'id': 1, 'name': 'Card', 'type': 'credit_card', 'balance': '-990.00', 'credit_limit': '1000.00'}],
    )

    assert ids(result) == [
        'credit-limit-1',
        'large-expense-7',
        'goal-progress-2',
        'system-backup-reminder',
    ]


def test_generation_is_deterministic():
    kwargs = dict(transactions=[expense(7, '1500.00', date='2025-06-10')])
    assert generate(**kwargs) == generate(**kwargs)


def test_apply_states_overlays_read_and_drops_dismissed():
    generated = generate(goals=[
        {'id': 1, 'name': 'A', 'target_amount': '100', 'current_amount': '100'},
        {'id': 2, 'name': 'B', 'target_amount': '100', 'current_amount': '100'},
    ])
    states = [
        {'notification_id': 'goal-completed-1', 'is_read': True, 'is_dismissed': False, 'dismissed_at': None},
        {'notification_id': 'goal-completed-2', 'is_read': False, 'is_dismissed': True,
         'dismissed_at': '2025-01-01 00:00:00'},
    ]

    merged = notifications.apply_states(generated, states, NOW)

    assert ids(merged) == ['goal-completed-1', 'system-backup-reminder']
    assert merged[0]['is_read'] is True
    assert notifications.unread_count(merged) == 1


def test_backup_reminder_returns_a_week_after_dismissal():
    generated = generate()

    recent = [{'notification_id': 'system-backup-reminder', 'is_read': True, 'is_dismissed': True,
               'dismissed_at': '2025-06-10 08:00:00'}]
    assert notifications.apply_states(generated, recent, NOW) == []

    stale = [{'notification_id': 'system-backup-reminder', 'is_read': True, 'is_dismissed': True,
              'dismissed_at': '2025-06-08 08:00:00'}]
    [reminder] = notifications.apply_states(generated, stale, NOW)
    assert reminder['is_read'] is False
