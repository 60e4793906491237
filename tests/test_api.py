import json

import pytest


def current_user_id(client):
    return client.get('/api/auth/me').get_json()['user']['id']


def create_account(client, **overrides):
    body = {'name': 'Checking', 'type': 'checking', 'balance': '1000.00'}
    body.update(overrides)
    response = client.post('/api/accounts', json=body)
    assert response.status_code == 201, response.get_json()
    return response.get_json()


def create_category(client, name='Food', type='expense'):
    response = client.post('/api/categories', json={'name': name, 'type': type, 'color': '#ff0000'})
    assert response.status_code == 201, response.get_json()
    return response.get_json()


def create_transaction(client, account, category, amount='42.00', type='expense', date='2025-06-10'):
    response = client.post('/api/transactions', json={
        'accountId': account['id'],
        'categoryId': category['id'],
        'title': 'Groceries',
        'amount': amount,
        'type': type,
        'date': date,
    })
    assert response.status_code == 201, response.get_json()
    return response.get_json()


# =============================================================================
# AUTH
# =============================================================================

def test_health_needs_no_login(client):
    response = client.get('/api/health')
    assert response.status_code == 200
    assert response.get_json() == {'status': 'ok'}


def test_protected_routes_answer_401_json(client):
    response = client.get('/api/accounts')
    assert response.status_code == 401
    assert response.get_json()['success'] is False


def test_register_logs_the_user_in(client):
    response = client.post('/api/auth/register', json={
        'username': 'dani', 'email': 'Dani@Example.com', 'password': 'secret123',
    })

    assert response.status_code == 201
    user = response.get_json()['user']
    assert user['username'] == 'dani'
    assert user['email'] == 'dani@example.com'
    assert user['onboardingCompleted'] is False
    assert 'password' not in user
    assert client.get('/api/auth/me').status_code == 200


def test_duplicate_registration_conflicts(auth_client):
    response = auth_client.post('/api/auth/register', json={
        'username': 'carla', 'email': 'other@example.com', 'password': 'secret123',
    })
    assert response.status_code == 409
    assert response.get_json()['message'] == "Username already exists."


def test_register_validation_errors(client):
    response = client.post('/api/auth/register', json={'username': 'x', 'email': 'nope', 'password': '1'})

    assert response.status_code == 400
    body = response.get_json()
    assert body['message'] == "Invalid request data"
    assert {tuple(error['loc']) for error in body['errors']} == {('username',), ('email',), ('password',)}


def test_malformed_json_is_a_400(client):
    response = client.post('/api/auth/login', data='{not json', content_type='application/json')
    assert response.status_code == 400


@pytest.mark.parametrize("credentials", [
    {'username': 'carla', 'password': 'secret123'},
    {'email': 'carla@example.com', 'password': 'secret123'},
    {'username': 'carla@example.com', 'password': 'secret123'},
])
def test_login_by_username_or_email(auth_client, credentials):
    auth_client.post('/api/auth/logout')

    response = auth_client.post('/api/auth/login', json=credentials)

    assert response.status_code == 200
    assert response.get_json()['user']['username'] == 'carla'


def test_login_with_wrong_password(auth_client):
    auth_client.post('/api/auth/logout')
    response = auth_client.post('/api/auth/login', json={'username': 'carla', 'password': 'wrong'})

    assert response.status_code == 401
    assert response.get_json()['message'] == "Invalid credentials"
    assert auth_client.get('/api/accounts').status_code == 401


def test_logout_ends_the_session(auth_client):
    assert auth_client.post('/api/auth/logout').status_code == 200
    assert auth_client.get('/api/auth/me').status_code == 401


def test_reset_password_with_security_phrase(auth_client):
    wrong = auth_client.post('/api/auth/reset-password', json={
        'email': 'carla@example.com', 'securityPhrase': 'red cat', 'newPassword': 'another1',
    })
    assert wrong.status_code == 400

    ok = auth_client.post('/api/auth/reset-password', json={
        'email': 'carla@example.com', 'securityPhrase': 'green owl', 'newPassword': 'another1',
    })
    assert ok.status_code == 200

    auth_client.post('/api/auth/logout')
    login = auth_client.post('/api/auth/login', json={'username': 'carla', 'password': 'another1'})
    assert login.status_code == 200


def test_mixed_case_email_round_trip(client):
    registered = client.post('/api/auth/register', json={
        'username': 'dora', 'email': 'Dora@Example.com', 'password': 'secret123',
        'securityPhrase': 'old tree',
    })
    assert registered.status_code == 201
    client.post('/api/auth/logout')

    for credentials in ({'email': 'Dora@Example.com'}, {'username': 'DORA@example.com'}):
        response = client.post('/api/auth/login', json=dict(credentials, password='secret123'))
        assert response.status_code == 200
        client.post('/api/auth/logout')

    reset = client.post('/api/auth/reset-password', json={
        'email': 'Dora@Example.com', 'securityPhrase': 'old tree', 'newPassword': 'another1',
    })
    assert reset.status_code == 200
    login = client.post('/api/auth/login', json={'email': 'dora@example.com', 'password': 'another1'})
    assert login.status_code == 200


def test_onboarding_complete(auth_client):
    response = auth_client.post('/api/onboarding/complete')
    assert response.get_json()['user']['onboardingCompleted'] is True


# =============================================================================
# CRUD
# =============================================================================

def test_account_crud_round_trip(auth_client):
    account = create_account(auth_client, name='Card', type='credit_card', balance='-50', creditLimit='2000')
    assert account['creditLimit'] == '2000.00'
    assert account['isActive'] is True

    response = auth_client.put(f"/api/accounts/{account['id']}", json={'name': 'Gold Card'})
    assert response.status_code == 200
    assert response.get_json()['name'] == 'Gold Card'
    assert response.get_json()['balance'] == '-50.00'

    assert auth_client.get(f"/api/accounts/{account['id']}").get_json()['name'] == 'Gold Card'

    assert auth_client.delete(f"/api/accounts/{account['id']}").get_json()['success'] is True
    assert auth_client.get('/api/accounts').get_json() == []


def test_missing_rows(auth_client):
    assert auth_client.get('/api/accounts/999').status_code == 404
    assert auth_client.put('/api/accounts/999', json={'name': 'x'}).status_code == 404
    assert auth_client.delete('/api/accounts/999').status_code == 200


def test_rows_of_other_users_are_invisible(app, auth_client):
    engine = app.extensions['finance_engine']
    _, _, stranger = engine.register_user('eve', 'eve@example.com', 'secret123')
    _, account = engine.create_account(stranger['id'], {'name': 'Hidden', 'type': 'savings'})

    assert auth_client.get(f"/api/accounts/{account['id']}").status_code == 404
    assert auth_client.patch(f"/api/accounts/{account['id']}", json={'name': 'Mine'}).status_code == 404
    assert engine.get_account(stranger['id'], account['id'])['name'] == 'Hidden'


def test_invalid_enum_rejected(auth_client):
    response = auth_client.post('/api/accounts', json={'name': 'Jar', 'type': 'mattress'})
    assert response.status_code == 400
    assert response.get_json()['errors'][0]['loc'] == ['type']


def test_transaction_moves_account_balance(auth_client):
    account = create_account(auth_client)
    category = create_category(auth_client)

    tx = create_transaction(auth_client, account, category, amount='-42.00')

    assert tx['amount'] == '42.00'
    assert tx['isPaid'] is False
    assert auth_client.get(f"/api/accounts/{account['id']}").get_json()['balance'] == '958.00'


def test_transaction_with_unknown_account(auth_client):
    category = create_category(auth_client)
    response = auth_client.post('/api/transactions', json={
        'accountId': 999, 'categoryId': category['id'], 'title': 'x',
        'amount': '1', 'type': 'expense', 'date': '2025-06-10',
    })

    assert response.status_code == 400
    assert response.get_json()['message'] == "Invalid account specified."


def test_transaction_listing_limit_is_capped(app, auth_client):
    engine = app.extensions['finance_engine']
    user_id = current_user_id(auth_client)
    account = create_account(auth_client)
    category = create_category(auth_client)
    for day in range(105):
        engine.create_transaction(user_id, {
            'account_id': account['id'], 'category_id': category['id'], 'title': f"tx {day}",
            'amount': '1.00', 'type': 'expense', 'date': '2025-06-10',
        })

    assert len(auth_client.get('/api/transactions').get_json()) == 50
    assert len(auth_client.get('/api/transactions?limit=500').get_json()) == 100
    assert len(auth_client.get('/api/transactions?limit=10&offset=100').get_json()) == 5


def test_liquid_amount(auth_client):
    account = create_account(auth_client)
    food = create_category(auth_client)
    salary = create_category(auth_client, 'Salary', 'income')
    create_transaction(auth_client, account, salary, amount='500.00', type='income')
    create_transaction(auth_client, account, food, amount='120.00')
    create_transaction(auth_client, account, food, amount='80.00', date='2025-05-01')

    body = auth_client.get('/api/transactions/liquid-amount?startDate=2025-06-01&endDate=2025-06-30').get_json()

    assert body['liquidAmount'] == 380.0
    assert body['transactionCount'] == 2


def test_budget_includes_usage(auth_client):
    food = create_category(auth_client)
    response = auth_client.post('/api/budgets', json={
        'categoryId': food['id'], 'name': 'Food', 'amount': '0', 'startDate': '2025-01-01',
    })
    assert response.status_code == 201

    [budget] = auth_client.get('/api/budgets').get_json()
    assert budget['percentage'] == 0
    assert budget['isOverBudget'] is False
    assert budget['spent'] == 0 and budget['remaining'] == 0


# =============================================================================
# DASHBOARD
# =============================================================================

def test_filtered_dashboard_accepts_camel_case_filters(auth_client):
    checking = create_account(auth_client)
    create_account(auth_client, name='Card', type='credit_card', balance='-300.00')
    food = create_category(auth_client)
    salary = create_category(auth_client, 'Salary', 'income')
    create_transaction(auth_client, checking, salary, amount='1000.00', type='income')
    create_transaction(auth_client, checking, food, amount='200.00')

    response = auth_client.post('/api/dashboard/filtered', json={
        'dateRange': {'startDate': '2025-06-01', 'endDate': '2025-06-30', 'period': 'custom'},
        'accounts': [],
        'categories': [],
        'transactionTypes': [],
        'amountRange': {'min': '', 'max': ''},
        'includeInvestments': True,
    })

    assert response.status_code == 200
    body = response.get_json()
    assert body['monthlyIncome'] == 1000.0
    assert body['monthlyExpenses'] == 200.0
    assert body['totalBalance'] == 1800.0
    assert body['totalInvestments'] == 0
    assert body['expensesByCategory'] == [{'category': 'Food', 'amount': 200.0, 'color': '#ff0000'}]
    assert [entry['month'] for entry in body['balanceHistory']] == ['Jun 2025']


def test_filtered_dashboard_without_body(auth_client):
    response = auth_client.post('/api/dashboard/filtered')
    assert response.status_code == 200
    assert response.get_json()['monthlyIncome'] == 0


def test_filtered_dashboard_rejects_bad_types(auth_client):
    response = auth_client.post('/api/dashboard/filtered', json={'transactionTypes': ['gift']})
    assert response.status_code == 400


def test_unfiltered_dashboard(auth_client):
    body = auth_client.get('/api/dashboard').get_json()
    for key in ('totalBalance', 'monthlyIncome', 'monthlyExpenses', 'totalInvestments',
                'upcomingBills', 'expensesByCategory', 'balanceHistory'):
        assert key in body


# =============================================================================
# NOTIFICATIONS
# =============================================================================

def test_notification_state_routes(auth_client):
    goal = auth_client.post('/api/financial-goals', json={
        'name': 'Bike', 'targetAmount': '100', 'currentAmount': '100',
        'targetDate': '2030-01-01', 'category': 'other',
    }).get_json()
    notification_id = f"goal-completed-{goal['id']}"

    body = auth_client.get('/api/notifications').get_json()
    assert notification_id in [n['id'] for n in body['notifications']]
    assert body['unreadCount'] == 2

    state = auth_client.post(f"/api/notification-states/{notification_id}/read").get_json()
    assert state['notificationId'] == notification_id
    assert state['isRead'] is True
    assert auth_client.get('/api/notifications').get_json()['unreadCount'] == 1

    auth_client.post(f"/api/notification-states/{notification_id}/dismiss")
    ids = [n['id'] for n in auth_client.get('/api/notifications').get_json()['notifications']]
    assert ids == ['system-backup-reminder']

    auth_client.post('/api/notification-states/system-backup-reminder/dismiss')
    assert auth_client.get('/api/notifications').get_json() == {'notifications': [], 'unreadCount': 0}
    assert len(auth_client.get('/api/notification-states').get_json()) == 2


def test_mark_all_read(auth_client):
    auth_client.post('/api/notification-states/a/dismiss')
    auth_client.post('/api/notification-states/b/dismiss')
    assert auth_client.get('/api/notifications').get_json()['unreadCount'] == 1

    response = auth_client.post('/api/notification-states/mark-all-read')

    assert response.get_json() == {'success': True, 'updated': 3}
    body = auth_client.get('/api/notifications').get_json()
    assert body['unreadCount'] == 0
    assert [n['isRead'] for n in body['notifications']] == [True]


# =============================================================================
# DATA MANAGEMENT
# =============================================================================

def test_backup_download_and_import(auth_client):
    account = create_account(auth_client)
    food = create_category(auth_client)
    create_transaction(auth_client, account, food)

    response = auth_client.get('/api/settings/backup')
    assert response.status_code == 200
    assert response.headers['Content-Disposition'].startswith('attachment; filename="financeapp_backup_')
    document = json.loads(response.get_data(as_text=True))
    assert len(document['data']['transactions']) == 1

    auth_client.delete('/api/settings/clear-data')
    assert auth_client.get('/api/transactions').get_json() == []

    imported = auth_client.post('/api/settings/import', json={'backup': document}).get_json()
    assert imported['success'] is True
    assert imported['imported']['transactions'] == 1
    assert len(auth_client.get('/api/transactions').get_json()) == 1

    text = response.get_data(as_text=True)
    for key in ('content', 'sqlContent'):
        reply = auth_client.post('/api/settings/import', json={key: text})
        assert reply.status_code == 200
    assert len(auth_client.get('/api/accounts').get_json()) == 1


@pytest.mark.parametrize("body", [
    {},
    {'backup': {'format': 'other'}},
    {'content': 'not json'},
])
def test_bad_import_is_a_400(auth_client, body):
    response = auth_client.post('/api/settings/import', json=body)
    assert response.status_code == 400


def test_generate_data(auth_client):
    response = auth_client.post('/api/settings/generate-data')

    assert response.status_code == 200
    summary = response.get_json()['summary']
    assert summary['transactions'] > 0
    assert summary['financialGoals'] == 3
    assert len(auth_client.get('/api/ai-predictions').get_json()) == summary['aiPredictions']


def test_unknown_route_is_json_404(client):
    response = client.get('/api/nope')
    assert response.status_code == 404
    assert 'message' in response.get_json()
