import json

import pytest

from financeapp.backup import BACKUP_FORMAT, BackupError, load_document


def test_export_contains_every_owned_table(engine, seeded, add_tx):
    add_tx('42.00')
    document = engine.export_backup(seeded['user_id'])

    assert document['format'] == BACKUP_FORMAT
    assert document['user_id'] == seeded['user_id']
    assert len(document['data']['accounts']) == 3
    assert len(document['data']['categories']) == 2
    assert document['data']['transactions'][0]['amount'] == '42.00'
    assert 'user_id' not in document['data']['transactions'][0]
    json.dumps(document)


def test_import_restores_into_another_user_with_new_ids(engine, seeded, add_tx, other_user):
    add_tx('42.00', due_date='2025-06-20')
    engine.create_budget(seeded['user_id'], {
        'category_id': seeded['food']['id'], 'name': 'Food', 'amount': '300',
        'period': 'monthly', 'start_date': '2025-06-01',
    })
    document = engine.export_backup(seeded['user_id'])

    counts = engine.import_backup(other_user['id'], json.dumps(document))

    assert counts['transactions'] == 1
    assert counts['accounts'] == 3
    accounts = {a['name']: a for a in engine.get_accounts(other_user['id'])}
    categories = {c['name']: c for c in engine.get_categories(other_user['id'])}
    [tx] = engine.get_transactions(other_user['id'])
    assert tx['account_id'] == accounts['Checking']['id']
    assert tx['category_id'] == categories['Food']['id']
    assert tx['account_id'] != seeded['checking']['id']
    assert tx['due_date'] == '2025-06-20'
    [budget] = engine.get_budgets(other_user['id'])
    assert budget['category_id'] == categories['Food']['id']
    # Balances come back as exported, not recomputed
    assert accounts['Checking']['balance'] == '958.00'


def test_import_replaces_existing_data(engine, seeded, add_tx):
    document = engine.export_backup(seeded['user_id'])
    add_tx('10.00')
    engine.create_account(seeded['user_id'], {'name': 'Extra', 'type': 'savings'})

    engine.import_backup(seeded['user_id'], document)

    assert engine.get_transactions(seeded['user_id']) == []
    assert len(engine.get_accounts(seeded['user_id'])) == 3


def test_failed_import_rolls_back(engine, seeded, add_tx):
    add_tx('10.00')
    document = engine.export_backup(seeded['user_id'])
    document['data']['transactions'][0]['account_id'] = 424242

    with pytest.raises(BackupError):
        engine.import_backup(seeded['user_id'], document)

    assert len(engine.get_transactions(seeded['user_id'])) == 1
    assert len(engine.get_accounts(seeded['user_id'])) == 3


def test_invalid_enum_value_is_a_backup_error(engine, seeded):
    document = engine.export_backup(seeded['user_id'])
    document['data']['accounts'][0]['type'] = 'mattress'

    with pytest.raises(BackupError):
        engine.import_backup(seeded['user_id'], document)
    assert len(engine.get_accounts(seeded['user_id'])) == 3


@pytest.mark.parametrize("payload", [
    "not json",
    "[]",
    {"format": "something-else", "version": 1, "data": {}},
    {"format": BACKUP_FORMAT, "version": 99, "data": {}},
    {"format": BACKUP_FORMAT, "version": 1},
    {"format": BACKUP_FORMAT, "version": 1, "data": {"accounts": {}}},
    {"format": BACKUP_FORMAT, "version": 1, "data": {"accounts": [{"id": 1, "type": "checking"}]}},
])
def test_load_document_rejects_malformed_payloads(payload):
    with pytest.raises(BackupError):
        load_document(payload)


def test_clear_all_data_keeps_user(engine, seeded, add_tx):
    add_tx('10.00')
    engine.create_financial_goal(seeded['user_id'], {
        'name': 'Trip', 'target_amount': '100', 'target_date': '2025-12-01', 'category': 'travel',
    })

    ok, _ = engine.clear_all_data(seeded['user_id'])

    assert ok
    document = engine.export_backup(seeded['user_id'])
    assert all(rows == [] for rows in document['data'].values())
    assert engine.get_user(seeded['user_id']) is not None
