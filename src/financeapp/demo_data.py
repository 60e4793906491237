"""
FinanceApp - Test Data Generator

Seeds a year of realistic financial data for a user: categories, accounts
(credit cards included), monthly income and bills, card and daily
purchases, budgets, investments, goals and a few stored AI insights.

Transactions go through FinanceEngine.create_transaction so account
balances move exactly as they would for user-entered data. Passing `seed`
makes the output reproducible.
"""

import datetime
import logging
import random

from faker import Faker

from .dashboard import month_end, shift_month, month_start

logger = logging.getLogger(__name__)

CATEGORIES = [
    # Expense
    {"name": "Supermercado", "type": "expense", "color": "#dc2626", "icon": "ShoppingCart"},
    {"name": "Restaurantes", "type": "expense", "color": "#f87171", "icon": "Utensils"},
    {"name": "Combustível", "type": "expense", "color": "#ea580c", "icon": "Fuel"},
    {"name": "Uber/Taxi", "type": "expense", "color": "#fb923c", "icon": "Car"},
    {"name": "Aluguel", "type": "expense", "color": "#7c3aed", "icon": "Home"},
    {"name": "Condomínio", "type": "expense", "color": "#c084fc", "icon": "Building"},
    {"name": "Energia Elétrica", "type": "expense", "color": "#0891b2", "icon": "Zap"},
    {"name": "Água", "type": "expense", "color": "#0e7490", "icon": "Droplet"},
    {"name": "Internet", "type": "expense", "color": "#155e75", "icon": "Wifi"},
    {"name": "Plano de Saúde", "type": "expense", "color": "#16a34a", "icon": "Heart"},
    {"name": "Farmácia", "type": "expense", "color": "#15803d", "icon": "Pill"},
    {"name": "Academia", "type": "expense", "color": "#fcd34d", "icon": "Dumbbell"},
    {"name": "Streaming", "type": "expense", "color": "#f59e0b", "icon": "Tv"},
    {"name": "Vestuário", "type": "expense", "color": "#ec4899", "icon": "Shirt"},
    {"name": "Lazer", "type": "expense", "color": "#eab308", "icon": "Smile"},
    # Income
    {"name": "Salário Líquido", "type": "income", "color": "#059669", "icon": "Briefcase"},
    {"name": "Freelance", "type": "income", "color": "#06b6d4", "icon": "Laptop"},
    {"name": "Dividendos", "type": "income", "color": "#65a30d", "icon": "TrendingUp"},
    {"name": "Poupança", "type": "income", "color": "#365314", "icon": "PiggyBank"},
]

ACCOUNTS = [
    {"key": "checking", "name": "Nubank Conta", "type": "checking", "balance": "8542.67", "domain": "nubank.com.br"},
    {"key": "salary", "name": "Conta Salário Itaú", "type": "checking", "balance": "4567.89", "domain": "itau.com.br"},
    {"key": "savings", "name": "Poupança Bradesco", "type": "savings", "balance": "34678.90", "domain": "bradesco.com.br"},
    {"key": "investment", "name": "Conta XP", "type": "investment", "balance": "67890.12", "domain": "xpi.com.br"},
    {"key": "card_nubank", "name": "Cartão Nubank", "type": "credit_card", "balance": "0.00",
     "credit_limit": "12000.00", "closing_day": 8, "due_day": 15, "domain": "nubank.com.br"},
    {"key": "card_itau", "name": "Cartão Itaú", "type": "credit_card", "balance": "0.00",
     "credit_limit": "15000.00", "closing_day": 3, "due_day": 10, "domain": "itau.com.br"},
]

FIXED_BILLS = [
    {"category": "Aluguel", "min": 2000, "max": 2000, "day": 1},
    {"category": "Condomínio", "min": 450, "max": 450, "day": 5},
    {"category": "Energia Elétrica", "min": 180, "max": 230, "day": 8},
    {"category": "Água", "min": 80, "max": 100, "day": 10},
    {"category": "Internet", "min": 120, "max": 120, "day": 12},
    {"category": "Plano de Saúde", "min": 450, "max": 450, "day": 3},
    {"category": "Academia", "min": 150, "max": 150, "day": 5},
]

# Daily spending: chance per day is 1/frequency
DAILY_TEMPLATES = [
    {"category": "Supermercado", "descriptions": ["Pão de Açúcar", "Carrefour", "Extra", "Feira Livre"], "min": 60, "max": 350, "frequency": 6},
    {"category": "Restaurantes", "descriptions": ["Outback", "Madero", "Padaria", "Restaurante por quilo"], "min": 25, "max": 180, "frequency": 4},
    {"category": "Combustível", "descriptions": ["Posto Shell", "Posto Ipiranga", "Posto BR"], "min": 120, "max": 280, "frequency": 9},
    {"category": "Uber/Taxi", "descriptions": ["Uber", "99"], "min": 15, "max": 60, "frequency": 5},
    {"category": "Farmácia", "descriptions": ["Drogasil", "Droga Raia", "Pague Menos"], "min": 20, "max": 150, "frequency": 20},
]

BUDGETS = [
    {"category": "Supermercado", "amount": "1500.00"},
    {"category": "Restaurantes", "amount": "800.00"},
    {"category": "Combustível", "amount": "600.00"},
    {"category": "Lazer", "amount": "400.00"},
]


def _require(result, label):
    success, payload = result
    if not success:
        raise RuntimeError(f"[DEMO] Could not create '{label}': {payload}")
    return payload


def _day_in_month(first, day):
    return first.replace(day=min(day, month_end(first).day))


def generate_test_data(engine, user_id, seed=None, today=None):
    """
    Generate a year of test data for a user.

    Args:
        engine: FinanceEngine instance
        user_id: owner of the generated rows
        seed: optional seed for reproducible output
        today: reference date (defaults to the current date)

    Returns:
        dict: counts of the rows created
    """
    rng = random.Random(seed)
    fake = Faker('pt_BR')
    if seed is not None:
        fake.seed_instance(seed)

    today = today or datetime.date.today()
    first_month = shift_month(month_start(today), -11)

    logger.info("[DEMO] Generating test data for user %s from %s to %s", user_id, first_month, month_end(today))

    # ===== CREATE CATEGORIES =====

    category_map = {}
    for cat in CATEGORIES:
        category = _require(engine.create_category(user_id, cat), cat['name'])
        category_map[cat['name']] = category['id']

    expense_category_ids = [category_map[c['name']] for c in CATEGORIES if c['type'] == 'expense']

    # ===== CREATE ACCOUNTS =====

    account_ids = {}
    for acc in ACCOUNTS:
        data = {key: value for key, value in acc.items() if key != 'key'}
        account = _require(engine.create_account(user_id, data), acc['name'])
        account_ids[acc['key']] = account['id']

    card_keys = [acc['key'] for acc in ACCOUNTS if acc['type'] == 'credit_card']
    logger.info("[DEMO] Created %d categories and %d accounts", len(category_map), len(account_ids))

    transaction_count = 0

    def add(account_key, category_name, title, amount, tx_type, tx_date, **extra):
        nonlocal transaction_count
        data = {
            'account_id': account_ids[account_key],
            'category_id': category_map[category_name],
            'title': title,
            'amount': f"{amount:.2f}",
            'type': tx_type,
            'date': tx_date,
        }
        data.update(extra)
        _require(engine.create_transaction(user_id, data), title)
        transaction_count += 1

    # ===== GENERATE MONTHLY TRANSACTIONS =====

    for offset in range(12):
        first = shift_month(first_month, offset)
        last = month_end(first)
        employer = fake.company()

        # Income
        payday = _day_in_month(first, 5)
        add('salary', "Salário Líquido", f"Salário Mensal - {employer}",
            rng.uniform(7500, 9000), 'income', payday, is_paid=True, paid_date=payday,
            description="Salário líquido após descontos")

        if rng.random() > 0.3:
            freelance_day = _day_in_month(first, rng.randint(15, 25))
            add('checking', "Freelance", f"Projeto Freelance - {fake.company()}",
                rng.uniform(1200, 4000), 'income', freelance_day, is_paid=True, paid_date=freelance_day,
                description=fake.sentence(nb_words=5))

        if offset % 3 == 0:
            dividend_day = _day_in_month(first, 28)
            add('investment', "Dividendos", "Dividendos ITUB4",
                rng.uniform(450, 1000), 'income', dividend_day, is_paid=True, paid_date=dividend_day)

        interest_day = _day_in_month(first, 28)
        add('savings', "Poupança", "Rendimento Poupança",
            rng.uniform(35, 100), 'income', interest_day, is_paid=True, paid_date=interest_day)

        # Fixed bills carry due dates; about 10% stay unpaid
        for bill in FIXED_BILLS:
            due = _day_in_month(first, bill['day'])
            is_paid = due < today and rng.random() > 0.1
            add('checking', bill['category'], f"{bill['category']} - {first.strftime('%m/%Y')}",
                rng.uniform(bill['min'], bill['max']), 'expense', due,
                due_date=due, is_paid=is_paid, paid_date=due if is_paid else None,
                is_recurring=True, recurrence_type='monthly',
                description=f"Pagamento mensal de {bill['category'].lower()}")

        # Credit card purchases
        for card_key in card_keys:
            for _ in range(rng.randint(3, 8)):
                purchase_day = _day_in_month(first, rng.randint(1, 28))
                if purchase_day > today:
                    continue
                category_id = rng.choice(expense_category_ids)
                category_name = next(name for name, cid in category_map.items() if cid == category_id)
                add(card_key, category_name, f"{fake.company()} - Compra",
                    rng.uniform(20, 320), 'expense', purchase_day, is_paid=True, paid_date=purchase_day)

        # Daily spending
        day = first
        while day <= min(last, today):
            for template in DAILY_TEMPLATES:
                if rng.random() < (1.0 / template['frequency']):
                    add('checking', template['category'], rng.choice(template['descriptions']),
                        rng.uniform(template['min'], template['max']), 'expense', day,
                        is_paid=True, paid_date=day)
            day += datetime.timedelta(days=1)

    logger.info("[DEMO] Generated %d transactions", transaction_count)

    # ===== BUDGETS, INVESTMENTS, GOALS =====

    for budget in BUDGETS:
        _require(engine.create_budget(user_id, {
            'category_id': category_map[budget['category']],
            'name': f"Orçamento {budget['category']}",
            'amount': budget['amount'],
            'period': 'monthly',
            'start_date': first_month,
        }), budget['category'])

    investments = [
        {"name": "CDB Banco Inter 120% CDI", "type": "cdb", "institution": "Inter",
         "initial_amount": "15000.00", "current_amount": "16380.00", "expected_return": "12.50"},
        {"name": "Tesouro IPCA+ 2035", "type": "tesouro", "institution": "XP Investimentos",
         "initial_amount": "20000.00", "current_amount": "21450.00", "expected_return": "6.20"},
        {"name": "Carteira de Ações", "type": "acoes", "institution": "Rico",
         "initial_amount": "10000.00", "current_amount": "8700.00", "expected_return": "15.00"},
        {"name": "Fundo Imobiliário HGLG11", "type": "fii", "institution": "XP Investimentos",
         "initial_amount": "5000.00", "current_amount": "5900.00", "expected_return": "9.00"},
    ]
    for investment in investments:
        investment['start_date'] = first_month
        _require(engine.create_investment(user_id, investment), investment['name'])

    goals = [
        {"name": "Reserva de Emergência", "target_amount": "30000.00", "current_amount": "24500.00",
         "target_date": shift_month(month_start(today), 6), "category": "emergency"},
        {"name": "Viagem para Europa", "target_amount": "18000.00", "current_amount": "6200.00",
         "target_date": shift_month(month_start(today), 10), "category": "travel"},
        {"name": "Renda Mensal", "target_amount": "9000.00", "current_amount": "0.00",
         "target_date": month_end(today), "category": "salary"},
    ]
    for goal in goals:
        _require(engine.create_financial_goal(user_id, goal), goal['name'])

    # ===== AI PREDICTIONS =====

    predictions = [
        {"type": "spending_forecast", "category_id": category_map["Supermercado"],
         "prediction_data": {"predicted_amount": round(rng.uniform(1200, 1600), 2), "trend": "stable"},
         "confidence": "0.82"},
        {"type": "savings_opportunity", "category_id": category_map["Restaurantes"],
         "prediction_data": {"potential_savings": round(rng.uniform(150, 400), 2),
                             "suggestion": "Reduza refeições fora de casa nos fins de semana"},
         "confidence": "0.74"},
        {"type": "cash_flow", "category_id": None,
         "prediction_data": {"next_month_balance": round(rng.uniform(2000, 5000), 2)},
         "confidence": "0.68"},
    ]
    for prediction in predictions:
        prediction['valid_from'] = month_start(today)
        prediction['valid_to'] = month_end(today)
        _require(engine.create_ai_prediction(user_id, prediction), prediction['type'])

    summary = {
        'categories': len(category_map),
        'accounts': len(account_ids),
        'transactions': transaction_count,
        'budgets': len(BUDGETS),
        'investments': len(investments),
        'financial_goals': len(goals),
        'ai_predictions': len(predictions),
    }
    logger.info("[DEMO] Test data ready for user %s: %s", user_id, summary)
    return summary
