# Overview: Service-layer operations for analytics; read-only aggregation over orders and line items.

from __future__ import annotations

from datetime import date, datetime, timedelta

from sqlalchemy import func

from ..extensions import db
from ..models import Category, Order, OrderItem, Product, User
from ..models.orders import ORDER_CANCELLED, ORDER_DELIVERED, ORDER_PENDING
from ..models.users import ROLE_OUTLET
from ..validation import (
    NotFoundError,
    ValidationError,
    parse_choice,
    parse_date_param,
    parse_end_date_param,
    parse_int,
)
from bfactory.time_utils import add_months, start_of_day, to_utc_z, utcnow


PERIODS = ("daily", "weekly", "monthly", "yearly")
WEEKS_BACK = 12
MONTHS_BACK = 12
TOP_PRODUCTS_LIMIT = 5


# =============================================================================
# OUTLET SALES ANALYTICS
# =============================================================================

def _get_outlet(outlet_id) -> User:
    outlet_id = parse_int(outlet_id, "outletId", minimum=1)
    outlet = db.session.get(User, outlet_id)
    if not outlet or outlet.role != ROLE_OUTLET:
        raise NotFoundError("Outlet not found")
    return outlet


def _window(period: str, day: datetime | None, now: datetime) -> tuple[datetime, datetime, str]:
    """
    Return (start, end, bucket) for the requested period.

    bucket is one of hour, day, week, month.
    """
    if day is not None:
        start = start_of_day(day)
        return start, start + timedelta(days=1), "hour"

    today = start_of_day(now)
    if period == "daily":
        start = today.replace(day=1)
        return start, add_months(start, 1), "day"
    if period == "weekly":
        this_monday = today - timedelta(days=today.weekday())
        return this_monday - timedelta(weeks=WEEKS_BACK - 1), this_monday + timedelta(weeks=1), "week"
    if period == "monthly":
        this_month = today.replace(day=1)
        return add_months(this_month, -(MONTHS_BACK - 1)), add_months(this_month, 1), "month"
    # yearly
    start = today.replace(month=1, day=1)
    return start, start.replace(year=start.year + 1), "month"


def _line_revenue():
    return func.coalesce(func.sum(OrderItem.unit_price_cents * OrderItem.quantity), 0)


def _outlet_items(outlet_id: int, start: datetime, end: datetime):
    """The shared match: outlet's line items on non-cancelled orders in [start, end)."""
    return lambda *columns: (
        db.session.query(*columns)
        .select_from(OrderItem)
        .join(Order, OrderItem.order_id == Order.id)
        .filter(
            OrderItem.outlet_id == outlet_id,
            Order.status != ORDER_CANCELLED,
            Order.created_at >= start,
            Order.created_at < end,
        )
    )


def _series(items, bucket: str) -> list[dict]:
    if bucket == "hour":
        key = func.strftime("%H", Order.created_at)
    elif bucket == "day" or bucket == "week":
        key = func.strftime("%Y-%m-%d", Order.created_at)
    else:
        key = func.strftime("%Y-%m", Order.created_at)

    rows = (
        items(key.label("period"), _line_revenue().label("revenue"), func.count(func.distinct(Order.id)).label("orders"))
        .group_by("period")
        .order_by("period")
        .all()
    )

    if bucket == "hour":
        return [{"hour": int(r.period), "revenue_cents": int(r.revenue), "orders": int(r.orders)} for r in rows]
    if bucket == "day":
        return [{"day": int(r.period[8:10]), "revenue_cents": int(r.revenue), "orders": int(r.orders)} for r in rows]
    if bucket == "month":
        return [{"month": r.period, "revenue_cents": int(r.revenue), "orders": int(r.orders)} for r in rows]

    # Fold days into ISO weeks; an order can't span two days so counts add up
    weeks: dict[tuple[int, int], dict] = {}
    for r in rows:
        iso_year, iso_week, _ = date.fromisoformat(r.period).isocalendar()
        entry = weeks.setdefault(
            (iso_year, iso_week),
            {"year": iso_year, "week": iso_week, "revenue_cents": 0, "orders": 0},
        )
        entry["revenue_cents"] += int(r.revenue)
        entry["orders"] += int(r.orders)
    return [weeks[k] for k in sorted(weeks)]


def _categories(items) -> list[dict]:
    rows = (
        items(Category.name.label("category"), _line_revenue().label("revenue"))
        .join(Product, OrderItem.product_id == Product.id)
        .join(Category, Product.category_id == Category.id)
        .group_by(Category.name)
        .order_by(_line_revenue().desc())
        .all()
    )
    return [{"category": r.category, "revenue_cents": int(r.revenue)} for r in rows]


def _top_products(items) -> list[dict]:
    rows = (
        items(
            OrderItem.product_id.label("product_id"),
            func.max(OrderItem.name).label("name"),
            func.coalesce(func.sum(OrderItem.quantity), 0).label("quantity"),
            _line_revenue().label("revenue"),
        )
        .group_by(OrderItem.product_id)
        .order_by(_line_revenue().desc())
        .limit(TOP_PRODUCTS_LIMIT)
        .all()
    )
    return [
        {
            "product_id": r.product_id,
            "name": r.name,
            "quantity": int(r.quantity),
            "revenue_cents": int(r.revenue),
        }
        for r in rows
    ]


def _summary(items) -> dict:
    row = items(_line_revenue().label("revenue"), func.count(func.distinct(Order.id)).label("orders")).one()
    revenue = int(row.revenue or 0)
    orders = int(row.orders or 0)
    return {
        "total_revenue_cents": revenue,
        "total_orders": orders,
        "average_order_value_cents": round(revenue / orders) if orders else 0,
    }


def sales_analytics(outlet_id, period: str | None = "daily", day: str | None = None) -> dict:
    """
    Sales dashboard for one outlet.

    Revenue is the outlet's own line items (unit price x quantity), so a
    multi-outlet order only contributes its share. Cancelled orders are
    excluded.

    Raises:
        ValidationError: non-integer outlet id, unknown period, malformed date
        NotFoundError: outlet does not exist
    """
    outlet = _get_outlet(outlet_id)
    period = parse_choice(period or "daily", "period", PERIODS)
    day_dt = parse_date_param(day, "date")

    start, end, bucket = _window(period, day_dt, utcnow())
    items = _outlet_items(outlet.id, start, end)

    return {
        "outlet_id": outlet.id,
        "period": period,
        "date": day_dt.date().isoformat() if day_dt else None,
        "start": to_utc_z(start),
        "end": to_utc_z(end),
        "bucket": bucket,
        "series": _series(items, bucket),
        "categories": _categories(items),
        "top_products": _top_products(items),
        "summary": _summary(items),
    }


# =============================================================================
# ADMIN DASHBOARD AND REPORTS
# =============================================================================

def dashboard_stats() -> dict:
    total_sales = (
        db.session.query(func.coalesce(func.sum(Order.total_price_cents), 0))
        .filter(Order.status == ORDER_DELIVERED)
        .scalar()
    )

    recent_orders = (
        db.session.query(Order).order_by(Order.created_at.desc(), Order.id.desc()).limit(5).all()
    )

    outlet_product_counts = (
        db.session.query(User, func.count(Product.id))
        .outerjoin(Product, Product.outlet_id == User.id)
        .filter(User.role == ROLE_OUTLET)
        .group_by(User.id)
        .order_by(User.created_at.desc(), User.id.desc())
        .limit(3)
        .all()
    )

    category_rows = (
        db.session.query(Category.name, _line_revenue().label("value"))
        .select_from(OrderItem)
        .join(Order, OrderItem.order_id == Order.id)
        .join(Product, OrderItem.product_id == Product.id)
        .join(Category, Product.category_id == Category.id)
        .filter(Order.status == ORDER_DELIVERED)
        .group_by(Category.name)
        .order_by(_line_revenue().desc())
        .all()
    )

    return {
        "total_sales_cents": int(total_sales or 0),
        "total_orders": db.session.query(Order).count(),
        "total_users": db.session.query(User).count(),
        "total_outlets": db.session.query(User).filter(User.role == ROLE_OUTLET).count(),
        "total_products": db.session.query(Product).count(),
        "pending_orders": db.session.query(Order).filter(Order.status == ORDER_PENDING).count(),
        # Outlets that never set up a storefront
        "pending_outlets": db.session.query(User).filter(
            User.role == ROLE_OUTLET,
            (User.store_name.is_(None)) | (User.store_name == ""),
        ).count(),
        "recent_orders": [
            {
                "id": o.id,
                "order_number": o.order_number,
                "customer": (o.user.name if o.user else o.guest_name) or "Unknown",
                "total_price_cents": o.total_price_cents,
                "status": o.status,
                "created_at": to_utc_z(o.created_at),
            }
            for o in recent_orders
        ],
        "new_outlets": [
            {
                "id": outlet.id,
                "name": outlet.store_name or "Pending Outlet",
                "owner": outlet.name,
                "status": "active" if outlet.store_name else "pending",
                "products_count": int(count),
                "created_at": to_utc_z(outlet.created_at),
            }
            for outlet, count in outlet_product_counts
        ],
        "sales_by_category": [{"name": name, "value_cents": int(value)} for name, value in category_rows],
    }


def sales_report(start: str | None = None, end: str | None = None) -> dict:
    """Per-outlet revenue and order counts over an optional date range."""
    start_dt = parse_date_param(start, "startDate")
    end_dt = parse_end_date_param(end, "endDate")
    if start_dt and end_dt and start_dt > end_dt:
        raise ValidationError("startDate must be before endDate")

    query = (
        db.session.query(
            OrderItem.outlet_id.label("outlet_id"),
            func.max(User.store_name).label("store_name"),
            func.count(func.distinct(Order.id)).label("orders"),
            func.coalesce(func.sum(OrderItem.quantity), 0).label("items_sold"),
            _line_revenue().label("revenue"),
        )
        .select_from(OrderItem)
        .join(Order, OrderItem.order_id == Order.id)
        .outerjoin(User, OrderItem.outlet_id == User.id)
        .filter(Order.status != ORDER_CANCELLED)
    )
    if start_dt:
        query = query.filter(Order.created_at >= start_dt)
    if end_dt:
        query = query.filter(Order.created_at <= end_dt)

    rows = query.group_by(OrderItem.outlet_id).order_by(_line_revenue().desc()).all()
    outlets = [
        {
            "outlet_id": r.outlet_id,
            "store_name": r.store_name,
            "orders": int(r.orders),
            "items_sold": int(r.items_sold),
            "revenue_cents": int(r.revenue),
        }
        for r in rows
    ]
    return {
        "start": to_utc_z(start_dt) if start_dt else None,
        "end": to_utc_z(end_dt) if end_dt else None,
        "total_revenue_cents": sum(o["revenue_cents"] for o in outlets),
        "outlets": outlets,
    }


def outlet_sales(outlet_id, start: str | None = None, end: str | None = None) -> dict:
    """The outlet's sold line items, newest first."""
    outlet = _get_outlet(outlet_id)
    start_dt = parse_date_param(start, "startDate")
    end_dt = parse_end_date_param(end, "endDate")

    query = (
        db.session.query(OrderItem, Order)
        .join(Order, OrderItem.order_id == Order.id)
        .filter(OrderItem.outlet_id == outlet.id, Order.status != ORDER_CANCELLED)
    )
    if start_dt:
        query = query.filter(Order.created_at >= start_dt)
    if end_dt:
        query = query.filter(Order.created_at <= end_dt)

    sales = [
        {
            "order_id": order.id,
            "order_number": order.order_number,
            "product_id": item.product_id,
            "name": item.name,
            "quantity": item.quantity,
            "unit_price_cents": item.unit_price_cents,
            "total_cents": item.line_total_cents,
            "payment_status": order.payment_status,
            "created_at": to_utc_z(order.created_at),
        }
        for item, order in query.order_by(Order.created_at.desc(), OrderItem.id.desc()).all()
    ]
    return {
        "outlet_id": outlet.id,
        "count": len(sales),
        "total_cents": sum(s["total_cents"] for s in sales),
        "sales": sales,
    }
