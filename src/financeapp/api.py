"""
FinanceApp - Flask REST API

RESTful API for the FinanceApp personal finance backend. Flask with
Flask-Login session cookies; every route lives on the `/api` blueprint.

Authentication:
- Registration, login by username or email, security-phrase reset
- Session management with cookies

Financial data:
- Accounts, categories, transactions, budgets, investments, goals (CRUD)
- Liquid amount over a date range
- Stored AI insights

Dashboard:
- Unfiltered overview and the filtered aggregate

Data management:
- Test data generation, wipe, JSON backup export/import
- Notifications with persisted read/dismiss state

Request bodies are validated with pydantic; responses are camelCase JSON.
"""

import datetime
import json
import logging
from decimal import Decimal

from flask import Blueprint, Flask, Response, current_app, jsonify, request
from flask.json.provider import DefaultJSONProvider
from flask_cors import CORS
from pydantic import ValidationError
from pydantic.alias_generators import to_camel
from werkzeug.exceptions import BadRequest, HTTPException

from . import schemas
from .backup import BackupError
from .config import Config
from .demo_data import generate_test_data
from .engine import FinanceEngine
from .session_controller import SessionController, current_user, login_required

logger = logging.getLogger(__name__)


class CustomJSONProvider(DefaultJSONProvider):
    """
    JSON provider for engine values.

    Converts:
    - Decimal to float
    - datetime/date to ISO 8601 strings
    """
    def default(self, obj):
        if isinstance(obj, Decimal):
            return float(obj)
        if isinstance(obj, (datetime.datetime, datetime.date)):
            return obj.isoformat()
        return super().default(obj)


def camelize(value):
    """Recursively convert snake_case dict keys to camelCase for the wire."""
    if isinstance(value, dict):
        return {to_camel(key) if isinstance(key, str) else key: camelize(item) for key, item in value.items()}
    if isinstance(value, (list, tuple)):
        return [camelize(item) for item in value]
    return value


bp = Blueprint('api', __name__, url_prefix='/api')


# =============================================================================
# REQUEST HELPERS
# =============================================================================

def get_engine():
    return current_app.extensions['finance_engine']


def get_session_controller():
    return current_app.extensions['session_controller']


def current_user_id():
    return current_user.user_id


def json_body():
    data = request.get_json(silent=True)
    if not isinstance(data, dict):
        raise BadRequest("Request body must be a JSON object.")
    return data


def parse(model):
    """Validate the JSON body against a pydantic model."""
    return model.model_validate(json_body())


def parse_update(model):
    """Validate a partial update; only fields the client sent are returned."""
    return model.model_validate(json_body()).model_dump(exclude_unset=True)


def result_response(success, payload, status=200):
    """Turn an engine (success, payload) tuple into a response."""
    if success:
        return jsonify(camelize(payload)), status
    if "not found" in payload:
        status_code = 404
    elif "exists" in payload:
        status_code = 409
    else:
        status_code = 400
    return jsonify({"success": False, "message": payload}), status_code


def found_or_404(row, label):
    if row is None:
        return jsonify({"message": f"{label} not found"}), 404
    return jsonify(camelize(row))


def auth_user_payload(user):
    return {
        "id": user['id'],
        "username": user['username'],
        "email": user['email'],
        "userType": user['user_type'],
        "onboardingCompleted": user['onboarding_completed'],
    }


# =============================================================================
# AUTHENTICATION API ROUTES
# =============================================================================

@bp.route('/auth/login', methods=['POST'])
def login():
    body = parse(schemas.LoginRequest)
    engine = get_engine()

    if body.email:
        user = engine.validate_user_by_email(body.email, body.password)
    else:
        user = engine.validate_user(body.username, body.password)
        if user is None and '@' in body.username:
            user = engine.validate_user_by_email(schemas.normalize_email(body.username), body.password)

    if not user:
        return jsonify({"message": "Invalid credentials"}), 401

    get_session_controller().login(user)
    return jsonify({"user": {"id": user['id'], "username": user['username']}})


@bp.route('/auth/register', methods=['POST'])
def register():
    body = parse(schemas.RegisterRequest)
    success, message, user = get_engine().register_user(
        body.username, body.email, body.password, body.security_phrase
    )
    if not success:
        return result_response(False, message)

    get_session_controller().login(user)
    return jsonify({"user": auth_user_payload(user)}), 201


@bp.route('/auth/reset-password', methods=['POST'])
def reset_password():
    body = parse(schemas.ResetPasswordRequest)
    success, message = get_engine().reset_password(body.email, body.security_phrase, body.new_password)
    if not success:
        return jsonify({"message": message}), 400
    return jsonify({"message": message})


@bp.route('/auth/logout', methods=['POST'])
@login_required
def logout():
    get_session_controller().logout()
    return jsonify({"message": "Logged out successfully"})


@bp.route('/auth/me', methods=['GET'])
@login_required
def me():
    user = get_engine().get_user(current_user_id())
    if not user:
        return jsonify({"message": "User not found"}), 404
    return jsonify({"user": auth_user_payload(user)})


@bp.route('/onboarding/complete', methods=['POST'])
@login_required
def complete_onboarding():
    user = get_engine().mark_onboarding_completed(current_user_id())
    return jsonify({"user": auth_user_payload(user)})


@bp.route('/health', methods=['GET'])
def health():
    return jsonify({"status": "ok"})


# =============================================================================
# ACCOUNTS
# =============================================================================

@bp.route('/accounts', methods=['GET'])
@login_required
def list_accounts():
    return jsonify(camelize(get_engine().get_accounts(current_user_id())))


@bp.route('/accounts', methods=['POST'])
@login_required
def create_account():
    data = parse(schemas.AccountCreate).model_dump()
    return result_response(*get_engine().create_account(current_user_id(), data), status=201)


@bp.route('/accounts/<int:account_id>', methods=['GET'])
@login_required
def get_account(account_id):
    return found_or_404(get_engine().get_account(current_user_id(), account_id), "Account")


@bp.route('/accounts/<int:account_id>', methods=['PUT', 'PATCH'])
@login_required
def update_account(account_id):
    data = parse_update(schemas.AccountUpdate)
    return result_response(*get_engine().update_account(current_user_id(), account_id, data))


@bp.route('/accounts/<int:account_id>', methods=['DELETE'])
@login_required
def delete_account(account_id):
    success, message = get_engine().delete_account(current_user_id(), account_id)
    return jsonify({"success": success, "message": message})


# =============================================================================
# CATEGORIES
# =============================================================================

@bp.route('/categories', methods=['GET'])
@login_required
def list_categories():
    return jsonify(camelize(get_engine().get_categories(current_user_id())))


@bp.route('/categories', methods=['POST'])
@login_required
def create_category():
    data = parse(schemas.CategoryCreate).model_dump()
    return result_response(*get_engine().create_category(current_user_id(), data), status=201)


@bp.route('/categories/<int:category_id>', methods=['GET'])
@login_required
def get_category(category_id):
    return found_or_404(get_engine().get_category(current_user_id(), category_id), "Category")


@bp.route('/categories/<int:category_id>', methods=['PUT', 'PATCH'])
@login_required
def update_category(category_id):
    data = parse_update(schemas.CategoryUpdate)
    return result_response(*get_engine().update_category(current_user_id(), category_id, data))


@bp.route('/categories/<int:category_id>', methods=['DELETE'])
@login_required
def delete_category(category_id):
    success, message = get_engine().delete_category(current_user_id(), category_id)
    return jsonify({"success": success, "message": message})


# =============================================================================
# TRANSACTIONS
# =============================================================================

@bp.route('/transactions', methods=['GET'])
@login_required
def list_transactions():
    limit = request.args.get('limit', 50, type=int)
    offset = request.args.get('offset', 0, type=int)
    return jsonify(camelize(get_engine().get_transactions(current_user_id(), limit=limit, offset=offset)))


@bp.route('/transactions', methods=['POST'])
@login_required
def create_transaction():
    data = parse(schemas.TransactionCreate).model_dump()
    return result_response(*get_engine().create_transaction(current_user_id(), data), status=201)


@bp.route('/transactions/liquid-amount', methods=['GET'])
@login_required
def liquid_amount():
    result = get_engine().get_liquid_amount(
        current_user_id(),
        start_date=request.args.get('startDate') or None,
        end_date=request.args.get('endDate') or None,
    )
    return jsonify(camelize(result))


@bp.route('/transactions/<int:transaction_id>', methods=['GET'])
@login_required
def get_transaction(transaction_id):
    return found_or_404(get_engine().get_transaction(current_user_id(), transaction_id), "Transaction")


@bp.route('/transactions/<int:transaction_id>', methods=['PUT', 'PATCH'])
@login_required
def update_transaction(transaction_id):
    data = parse_update(schemas.TransactionUpdate)
    return result_response(*get_engine().update_transaction(current_user_id(), transaction_id, data))


@bp.route('/transactions/<int:transaction_id>', methods=['DELETE'])
@login_required
def delete_transaction(transaction_id):
    success, message = get_engine().delete_transaction(current_user_id(), transaction_id)
    return jsonify({"success": success, "message": message})


# =============================================================================
# BUDGETS
# =============================================================================

@bp.route('/budgets', methods=['GET'])
@login_required
def list_budgets():
    return jsonify(camelize(get_engine().get_budgets(current_user_id())))


@bp.route('/budgets', methods=['POST'])
@login_required
def create_budget():
    data = parse(schemas.BudgetCreate).model_dump()
    return result_response(*get_engine().create_budget(current_user_id(), data), status=201)


@bp.route('/budgets/<int:budget_id>', methods=['GET'])
@login_required
def get_budget(budget_id):
    return found_or_404(get_engine().get_budget(current_user_id(), budget_id), "Budget")


@bp.route('/budgets/<int:budget_id>', methods=['PUT', 'PATCH'])
@login_required
def update_budget(budget_id):
    data = parse_update(schemas.BudgetUpdate)
    return result_response(*get_engine().update_budget(current_user_id(), budget_id, data))


@bp.route('/budgets/<int:budget_id>', methods=['DELETE'])
@login_required
def delete_budget(budget_id):
    success, message = get_engine().delete_budget(current_user_id(), budget_id)
    return jsonify({"success": success, "message": message})


# =============================================================================
# INVESTMENTS
# =============================================================================

@bp.route('/investments', methods=['GET'])
@login_required
def list_investments():
    return jsonify(camelize(get_engine().get_investments(current_user_id())))


@bp.route('/investments', methods=['POST'])
@login_required
def create_investment():
    data = parse(schemas.InvestmentCreate).model_dump()
    return result_response(*get_engine().create_investment(current_user_id(), data), status=201)


@bp.route('/investments/<int:investment_id>', methods=['GET'])
@login_required
def get_investment(investment_id):
    return found_or_404(get_engine().get_investment(current_user_id(), investment_id), "Investment")


@bp.route('/investments/<int:investment_id>', methods=['PUT', 'PATCH'])
@login_required
def update_investment(investment_id):
    data = parse_update(schemas.InvestmentUpdate)
    return result_response(*get_engine().update_investment(current_user_id(), investment_id, data))


@bp.route('/investments/<int:investment_id>', methods=['DELETE'])
@login_required
def delete_investment(investment_id):
    success, message = get_engine().delete_investment(current_user_id(), investment_id)
    return jsonify({"success": success, "message": message})


# =============================================================================
# FINANCIAL GOALS
# =============================================================================

@bp.route('/financial-goals', methods=['GET'])
@login_required
def list_goals():
    return jsonify(camelize(get_engine().get_financial_goals(current_user_id())))


@bp.route('/financial-goals', methods=['POST'])
@login_required
def create_goal():
    data = parse(schemas.GoalCreate).model_dump()
    return result_response(*get_engine().create_financial_goal(current_user_id(), data), status=201)


@bp.route('/financial-goals/<int:goal_id>', methods=['GET'])
@login_required
def get_goal(goal_id):
    return found_or_404(get_engine().get_financial_goal(current_user_id(), goal_id), "Goal")


@bp.route('/financial-goals/<int:goal_id>', methods=['PUT', 'PATCH'])
@login_required
def update_goal(goal_id):
    data = parse_update(schemas.GoalUpdate)
    return result_response(*get_engine().update_financial_goal(current_user_id(), goal_id, data))


@bp.route('/financial-goals/<int:goal_id>', methods=['DELETE'])
@login_required
def delete_goal(goal_id):
    success, message = get_engine().delete_financial_goal(current_user_id(), goal_id)
    return jsonify({"success": success, "message": message})


# =============================================================================
# DASHBOARD & INSIGHTS
# =============================================================================

@bp.route('/dashboard', methods=['GET'])
@login_required
def dashboard_data():
    return jsonify(camelize(get_engine().get_dashboard_data(current_user_id())))


@bp.route('/dashboard/filtered', methods=['POST'])
@login_required
def filtered_dashboard_data():
    filters = schemas.DashboardFilterRequest.model_validate(request.get_json(silent=True) or {})
    return jsonify(camelize(get_engine().get_filtered_dashboard_data(current_user_id(), filters)))


@bp.route('/ai-predictions', methods=['GET'])
@login_required
def ai_predictions():
    return jsonify(camelize(get_engine().get_ai_predictions(current_user_id())))


# =============================================================================
# NOTIFICATIONS
# =============================================================================

@bp.route('/notifications', methods=['GET'])
@login_required
def notifications():
    return jsonify(camelize(get_engine().get_notifications(current_user_id())))


@bp.route('/notification-states', methods=['GET'])
@login_required
def notification_states():
    return jsonify(camelize(get_engine().get_notification_states(current_user_id())))


@bp.route('/notification-states/mark-all-read', methods=['POST'])
@login_required
def mark_all_notifications_read():
    updated = get_engine().mark_all_notifications_read(current_user_id())
    return jsonify({"success": True, "updated": updated})


@bp.route('/notification-states/<path:notification_id>/read', methods=['POST'])
@login_required
def mark_notification_read(notification_id):
    return jsonify(camelize(get_engine().mark_notification_read(current_user_id(), notification_id)))


@bp.route('/notification-states/<path:notification_id>/dismiss', methods=['POST'])
@login_required
def dismiss_notification(notification_id):
    return jsonify(camelize(get_engine().mark_notification_dismissed(current_user_id(), notification_id)))


# =============================================================================
# DATA MANAGEMENT
# =============================================================================

@bp.route('/settings/generate-data', methods=['POST'])
@login_required
def generate_data():
    summary = generate_test_data(get_engine(), current_user_id())
    return jsonify({"success": True, "message": "Test data generated successfully", "summary": camelize(summary)})


@bp.route('/settings/clear-data', methods=['DELETE'])
@login_required
def clear_data():
    success, message = get_engine().clear_all_data(current_user_id())
    return jsonify({"success": success, "message": message})


@bp.route('/settings/backup', methods=['GET'])
@login_required
def export_backup():
    document = get_engine().export_backup(current_user_id())
    filename = f"financeapp_backup_{datetime.datetime.now().strftime('%Y%m%d_%H%M%S')}.json"
    return Response(
        json.dumps(document, indent=2, ensure_ascii=False),
        mimetype='application/json',
        headers={'Content-Disposition': f'attachment; filename="{filename}"'},
    )


@bp.route('/settings/import', methods=['POST'])
@login_required
def import_backup():
    body = parse(schemas.ImportRequest)
    payload = body.backup if body.backup is not None else body.content
    counts = get_engine().import_backup(current_user_id(), payload)
    return jsonify({"success": True, "message": "Backup imported successfully", "imported": camelize(counts)})


# =============================================================================
# ERROR HANDLERS
# =============================================================================

def register_error_handlers(app):

    @app.errorhandler(ValidationError)
    def handle_validation_error(e):
        return jsonify({
            "message": "Invalid request data",
            "errors": e.errors(include_url=False, include_context=False),
        }), 400

    @app.errorhandler(BackupError)
    def handle_backup_error(e):
        logger.warning("[BACKUP] Import rejected: %s", e)
        return jsonify({"message": str(e)}), 400

    @app.errorhandler(HTTPException)
    def handle_http_error(e):
        return jsonify({"message": e.description}), e.code

    @app.errorhandler(Exception)
    def handle_unexpected_error(e):
        logger.exception("[API] Unhandled error on %s %s", request.method, request.path)
        return jsonify({"message": "Internal server error"}), 500


# =============================================================================
# FLASK APPLICATION SETUP
# =============================================================================

def create_app(config_overrides=None):
    """
    Build the Flask application.

    Args:
        config_overrides: optional dict applied over Config (tests pass
            TESTING and DATABASE_PATH here)
    """
    app = Flask(__name__)
    app.config.from_object(Config)
    if config_overrides:
        app.config.update(config_overrides)

    app.json = CustomJSONProvider(app)

    origins = [origin.strip() for origin in app.config['CORS_ORIGINS'].split(',')]
    CORS(app, supports_credentials=True, origins=origins)

    engine = FinanceEngine(app.config['DATABASE_PATH'], bcrypt_rounds=app.config['BCRYPT_ROUNDS'])
    app.extensions['finance_engine'] = engine
    SessionController(app, engine)

    app.register_blueprint(bp)
    register_error_handlers(app)

    logger.info("[API] FinanceApp ready (database: %s)", engine.db_path)
    return app
