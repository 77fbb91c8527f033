# Overview: LLM shop assistant; builds store context from the database and forwards the question.

"""
Assistant Service

A question is answered by an OpenAI-compatible chat completions endpoint.
The system prompt carries a plain-text snapshot of the store: baseline
counts always, plus extra sections when the question mentions certain
keywords. Outlet users only see their own sales and stock.
"""

from __future__ import annotations

from datetime import timedelta

from flask import current_app
from sqlalchemy import func

from ..extensions import db
from ..models import Category, Order, OrderItem, Payment, Product, User
from ..models.orders import VALID_ORDER_STATUSES
from ..models.users import ROLE_OUTLET, VALID_ROLES
from ..validation import GatewayError, ServiceUnavailableError, ValidationError, check_length
from .gateway_client import post_json
from bfactory.time_utils import start_of_day, utcnow


MAX_QUESTION_LENGTH = 2000

SYSTEM_PROMPT = (
    "You are a friendly and knowledgeable assistant for the Breakfast Factory store. "
    "Answer precisely and only from the provided store data. For sales questions, give "
    "data-driven insights and practical suggestions to improve sales. Never reveal personal "
    "information, passwords or payment details. Format answers in short markdown sections "
    "with bullet points, in simple language. Amounts are in pesewas (100 pesewas = 1 GHS). "
    "Store data: "
)


def _money(cents: int) -> str:
    return f"GHS {cents / 100:.2f}"


def _sales_since(start, end=None, outlet_id: int | None = None) -> tuple[int, int]:
    """(order count, revenue in pesewas) for orders created in [start, end)."""
    if outlet_id is not None:
        query = (
            db.session.query(
                func.count(func.distinct(Order.id)),
                func.coalesce(func.sum(OrderItem.unit_price_cents * OrderItem.quantity), 0),
            )
            .select_from(OrderItem)
            .join(Order, OrderItem.order_id == Order.id)
            .filter(OrderItem.outlet_id == outlet_id)
        )
    else:
        query = db.session.query(func.count(Order.id), func.coalesce(func.sum(Order.total_price_cents), 0))

    query = query.filter(Order.created_at >= start)
    if end is not None:
        query = query.filter(Order.created_at < end)
    count, total = query.one()
    return int(count or 0), int(total or 0)


def _baseline(outlet_id: int | None) -> str:
    status_counts = dict(db.session.query(Order.status, func.count(Order.id)).group_by(Order.status).all())
    role_counts = dict(db.session.query(User.role, func.count(User.id)).group_by(User.role).all())
    today_count, today_total = _sales_since(start_of_day(utcnow()), outlet_id=outlet_id)

    orders = ", ".join(f"{s}: {status_counts.get(s, 0)}" for s in VALID_ORDER_STATUSES)
    users = ", ".join(f"{r}: {role_counts.get(r, 0)}" for r in VALID_ROLES)
    return (
        f"Total products: {db.session.query(Product).count()}. "
        f"Total orders: {sum(status_counts.values())} ({orders}). "
        f"Today's sales: {today_count} orders, total {_money(today_total)}. "
        f"Total users: {sum(role_counts.values())} ({users}). "
        f"Total categories: {db.session.query(Category).count()}. "
        f"Total payments: {db.session.query(Payment).count()}. "
    )


def _yesterday_sales(outlet_id: int | None) -> str:
    today = start_of_day(utcnow())
    count, total = _sales_since(today - timedelta(days=1), today, outlet_id=outlet_id)
    return f"Sales yesterday: {count} orders, total {_money(total)}. "


def _stock(outlet_id: int | None) -> str:
    query = db.session.query(Product)
    if outlet_id is not None:
        query = query.filter(Product.outlet_id == outlet_id)
    in_stock = query.filter(Product.quantity > 0).count()
    out_of_stock = [name for (name,) in query.filter(Product.quantity == 0).with_entities(Product.name).all()]
    return (
        f"Products: {in_stock} in stock, {len(out_of_stock)} out of stock. "
        f"Out of stock products: {', '.join(out_of_stock) or 'None'}. "
    )


def _best_seller_this_week(outlet_id: int | None) -> str:
    query = (
        db.session.query(OrderItem.name, func.sum(OrderItem.quantity).label("sold"))
        .join(Order, OrderItem.order_id == Order.id)
        .filter(Order.created_at >= utcnow() - timedelta(days=7))
    )
    if outlet_id is not None:
        query = query.filter(OrderItem.outlet_id == outlet_id)
    row = query.group_by(OrderItem.name).order_by(func.sum(OrderItem.quantity).desc()).first()
    if not row:
        return "Best selling product this week: None. "
    return f"Best selling product this week: {row.name}, sold {int(row.sold)} units. "


def _recent_payments(outlet_id: int | None) -> str:
    query = db.session.query(Payment)
    if outlet_id is not None:
        query = query.filter(Payment.outlet_id == outlet_id)
    payments = query.order_by(Payment.created_at.desc(), Payment.id.desc()).limit(5).all()
    listed = "; ".join(f"{_money(p.amount_cents)} ({p.status}, {p.method})" for p in payments)
    return f"Recent payments: {listed or 'None'}. "


def _categories(outlet_id: int | None) -> str:
    names = [c.name for c in db.session.query(Category).order_by(Category.name.asc()).all()]
    return f"Product categories: {', '.join(names) or 'None'}. "


# (keywords, section builder); a section is added once even if several keywords match
KEYWORD_SECTIONS = (
    (("sales", "yesterday"), _yesterday_sales),
    (("stock",), _stock),
    (("best selling", "this week"), _best_seller_this_week),
    (("payments",), _recent_payments),
    (("categories",), _categories),
)


def build_context(question: str, user: User | None) -> str:
    outlet_id = user.id if user is not None and user.role == ROLE_OUTLET else None
    lowered = question.lower()

    context = _baseline(outlet_id)
    for keywords, builder in KEYWORD_SECTIONS:
        if any(k in lowered for k in keywords):
            context += builder(outlet_id)
    return context


def ask(question, user: User | None = None) -> str:
    """
    Answer a question about the store.

    Raises:
        ValidationError: empty or oversized question
        ServiceUnavailableError: no GITHUB_TOKEN configured
        GatewayError: the model endpoint failed or answered without choices
    """
    question = check_length(question, "question", MAX_QUESTION_LENGTH) if question is not None else ""
    if not question:
        raise ValidationError("question is required")

    token = current_app.config.get("GITHUB_TOKEN")
    if not token:
        raise ServiceUnavailableError("AI assistant is not configured")

    body = post_json(
        f"{current_app.config['AI_ENDPOINT'].rstrip('/')}/chat/completions",
        {
            "model": current_app.config["AI_MODEL"],
            "messages": [
                {"role": "system", "content": SYSTEM_PROMPT + build_context(question, user)},
                {"role": "user", "content": question},
            ],
            "temperature": 1.0,
            "top_p": 1.0,
        },
        headers={"Authorization": f"Bearer {token}"},
        gateway="AI endpoint",
    )

    try:
        return body["choices"][0]["message"]["content"]
    except (KeyError, IndexError, TypeError):
        current_app.logger.warning("AI endpoint answered without choices: %r", body)
        raise GatewayError("AI endpoint returned an invalid response")
