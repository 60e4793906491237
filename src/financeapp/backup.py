"""
FinanceApp - Backup Documents

A backup is a JSON document holding every row the user owns:

    {
        "format": "financeapp-backup",
        "version": 1,
        "exported_at": "2025-01-31 12:00:00",
        "user_id": 7,
        "data": {"categories": [...], "accounts": [...], ...}
    }

This module builds and validates documents. Writing them back into the
database (id remapping, single transaction) is FinanceEngine.import_backup.
"""

import json
import logging

logger = logging.getLogger(__name__)

BACKUP_FORMAT = 'financeapp-backup'
BACKUP_VERSION = 1

# Insert order: parents before the rows that reference them
BACKUP_TABLES = (
    'categories',
    'accounts',
    'transactions',
    'budgets',
    'investments',
    'financial_goals',
    'ai_predictions',
)

# Columns restored on import (ids and user_id are reassigned)
BACKUP_COLUMNS = {
    'categories': ('name', 'type', 'color', 'icon', 'is_active', 'created_at'),
    'accounts': ('name', 'type', 'balance', 'credit_limit', 'closing_day', 'due_day',
                 'domain', 'is_active', 'created_at'),
    'transactions': ('account_id', 'category_id', 'title', 'amount', 'type', 'description',
                     'date', 'due_date', 'paid_date', 'is_paid', 'is_recurring',
                     'recurrence_type', 'recurrence_interval', 'recurrence_end_date',
                     'attachment_url', 'created_at'),
    'budgets': ('category_id', 'name', 'amount', 'period', 'start_date', 'end_date',
                'is_active', 'created_at'),
    'investments': ('name', 'type', 'institution', 'initial_amount', 'current_amount',
                    'expected_return', 'start_date', 'maturity_date', 'is_active', 'created_at'),
    'financial_goals': ('name', 'target_amount', 'current_amount', 'target_date', 'category',
                        'is_active', 'created_at'),
    'ai_predictions': ('type', 'category_id', 'prediction_data', 'confidence', 'valid_from',
                       'valid_to', 'is_active', 'created_at'),
}

REQUIRED_COLUMNS = {
    'categories': ('id', 'name', 'type'),
    'accounts': ('id', 'name', 'type'),
    'transactions': ('account_id', 'category_id', 'title', 'amount', 'type', 'date'),
    'budgets': ('category_id', 'name', 'amount', 'period', 'start_date'),
    'investments': ('name', 'type', 'institution', 'initial_amount', 'start_date'),
    'financial_goals': ('name', 'target_amount', 'target_date', 'category'),
    'ai_predictions': ('type', 'prediction_data', 'valid_from', 'valid_to'),
}


class BackupError(Exception):
    """Raised when a backup document cannot be read or restored."""


def build_document(user_id, tables, exported_at):
    return {
        'format': BACKUP_FORMAT,
        'version': BACKUP_VERSION,
        'exported_at': exported_at,
        'user_id': user_id,
        'data': {table: tables.get(table, []) for table in BACKUP_TABLES},
    }


def load_document(payload):
    """
    Accept a dict or JSON text and return a validated backup document.

    Raises:
        BackupError: malformed JSON, wrong format/version or missing columns
    """
    if isinstance(payload, (str, bytes)):
        try:
            payload = json.loads(payload)
        except ValueError as e:
            raise BackupError(f"Backup is not valid JSON: {e}") from e

    if not isinstance(payload, dict):
        raise BackupError("Backup must be a JSON object.")
    if payload.get('format') != BACKUP_FORMAT:
        raise BackupError("Unrecognized backup format.")
    if payload.get('version') != BACKUP_VERSION:
        raise BackupError(f"Unsupported backup version: {payload.get('version')}")

    data = payload.get('data')
    if not isinstance(data, dict):
        raise BackupError("Backup has no data section.")

    for table in BACKUP_TABLES:
        rows = data.get(table, [])
        if not isinstance(rows, list):
            raise BackupError(f"Backup table '{table}' must be a list.")
        for index, row in enumerate(rows):
            if not isinstance(row, dict):
                raise BackupError(f"Row {index} of '{table}' is not an object.")
            missing = [col for col in REQUIRED_COLUMNS[table] if row.get(col) in (None, '')]
            if missing:
                raise BackupError(f"Row {index} of '{table}' is missing {', '.join(missing)}.")

    unknown = set(data) - set(BACKUP_TABLES)
    if unknown:
        logger.warning("[BACKUP] Ignoring unknown tables in backup: %s", sorted(unknown))

    return payload
