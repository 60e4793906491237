import datetime

import pytest

from financeapp import create_app
from financeapp.engine import FinanceEngine

TODAY = datetime.date(2025, 6, 15)


@pytest.fixture
def engine(tmp_path):
    return FinanceEngine(tmp_path / "finance.db", bcrypt_rounds=4)


@pytest.fixture
def user(engine):
    ok, message, user = engine.register_user("ana", "ana@example.com", "secret123", security_phrase="blue fox")
    assert ok, message
    return user


@pytest.fixture
def other_user(engine):
    ok, message, user = engine.register_user("bruno", "bruno@example.com", "secret123")
    assert ok, message
    return user


@pytest.fixture
def seeded(engine, user):
    """A checking account, a credit card and one category of each type."""
    uid = user['id']
    _, checking = engine.create_account(uid, {'name': 'Checking', 'type': 'checking', 'balance': '1000.00'})
    _, savings = engine.create_account(uid, {'name': 'Savings', 'type': 'savings', 'balance': '500.00'})
    _, card = engine.create_account(uid, {
        'name': 'Card', 'type': 'credit_card', 'balance': '-200.00', 'credit_limit': '1000.00',
    })
    _, food = engine.create_category(uid, {'name': 'Food', 'type': 'expense', 'color': '#ff0000'})
    _, salary = engine.create_category(uid, {'name': 'Salary', 'type': 'income', 'color': '#00ff00'})
    return {
        'user_id': uid,
        'checking': checking,
        'savings': savings,
        'card': card,
        'food': food,
        'salary': salary,
    }


@pytest.fixture
def add_tx(engine, seeded):
    """Create a transaction on the checking account; returns the stored row."""
    def add(amount, tx_type='expense', date='2025-06-10', **extra):
        category = seeded['salary'] if tx_type == 'income' else seeded['food']
        data = {
            'account_id': seeded['checking']['id'],
            'category_id': category['id'],
            'title': f"{tx_type} {amount}",
            'amount': amount,
            'type': tx_type,
            'date': date,
        }
        data.update(extra)
        ok, tx = engine.create_transaction(seeded['user_id'], data)
        assert ok, tx
        return tx
    return add


@pytest.fixture
def app(tmp_path):
    return create_app({
        'TESTING': True,
        'DATABASE_PATH': str(tmp_path / "api.db"),
        'BCRYPT_ROUNDS': 4,
        'SECRET_KEY': 'test-secret',
    })


@pytest.fixture
def client(app):
    return app.test_client()


@pytest.fixture
def auth_client(client):
    response = client.post('/api/auth/register', json={
        'username': 'carla',
        'email': 'carla@example.com',
        'password': 'secret123',
        'securityPhrase': 'green owl',
    })
    assert response.status_code == 201
    return client
