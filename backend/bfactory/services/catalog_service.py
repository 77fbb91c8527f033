# backend/bfactory/services/catalog_service.py
"""
Catalog Service

Products belong to an outlet. Outlets manage their own products; admins
manage any product. Stock only moves through atomic UPDATE expressions
(purchase here, restock approval in restock_service).

Each customer may review a product once; the product keeps the running
average and count so listings never aggregate reviews.
"""
from __future__ import annotations

from sqlalchemy import or_

from ..extensions import db
from ..models import Category, Product, ProductReview, User
from ..models.users import ROLE_ADMIN, ROLE_OUTLET
from ..validation import (
    ConflictError,
    NotFoundError,
    PermissionDeniedError,
    ValidationError,
    check_length,
    parse_int,
    parse_money,
    require_fields,
)
from .concurrency import run_with_retry


MIN_RATING = 1
MAX_RATING = 5


PRODUCT_FIELD_MAP = {
    "name": "name",
    "productName": "name",
    "description": "description",
    "image_url": "image_url",
    "productImage": "image_url",
    "price_cents": "price_cents",
    "productPrice": "price_cents",
    "quantity": "quantity",
    "numberOfProductsAvailable": "quantity",
    "category_id": "category_id",
    "categoryId": "category_id",
}


def _normalize_product_patch(data: dict) -> dict:
    patch: dict = {}
    for key, value in (data or {}).items():
        column = PRODUCT_FIELD_MAP.get(key)
        if column is None:
            continue
        if column == "name":
            value = check_length(value, "name", 200)
            if not value:
                raise ValidationError("name cannot be blank")
        elif column == "price_cents":
            value = parse_money(value, "price_cents")
        elif column == "quantity":
            value = parse_int(value, "quantity", minimum=0)
        elif column == "category_id" and value is not None:
            value = parse_int(value, "category_id", minimum=1)
            if not db.session.get(Category, value):
                raise NotFoundError("Category not found")
        patch[column] = value
    return patch


def get_product(product_id: int) -> Product:
    product = db.session.get(Product, product_id)
    if not product:
        raise NotFoundError("Product not found")
    return product


def _require_owner(actor: User, product: Product) -> None:
    if actor.role == ROLE_ADMIN:
        return
    if actor.role == ROLE_OUTLET and product.outlet_id == actor.id:
        return
    raise PermissionDeniedError("You can only manage your own products")


def list_products(
    *,
    page: int | None = None,
    per_page: int | None = None,
    search: str | None = None,
    category_id: int | None = None,
    outlet_id: int | None = None,
) -> dict:
    """
    Product listing with optional pagination and filters.

    Returns:
        Dict with 'items', 'count', and pagination metadata if paginated.
    """
    base_query = db.session.query(Product)
    if search:
        base_query = base_query.filter(Product.name.ilike(f"%{search.strip()}%"))
    if category_id is not None:
        base_query = base_query.filter(Product.category_id == category_id)
    if outlet_id is not None:
        base_query = base_query.filter(Product.outlet_id == outlet_id)
    base_query = base_query.order_by(Product.name.asc(), Product.id.asc())

    if page is None:
        products = base_query.all()
        return {
            "items": [p.to_dict() for p in products],
            "count": len(products),
        }

    per_page = min(per_page or 20, 100)
    page = max(page, 1)

    total = base_query.count()
    total_pages = (total + per_page - 1) // per_page if total > 0 else 1

    products = base_query.offset((page - 1) * per_page).limit(per_page).all()

    return {
        "items": [p.to_dict() for p in products],
        "count": len(products),
        "pagination": {
            "page": page,
            "per_page": per_page,
            "total": total,
            "total_pages": total_pages,
            "has_next": page < total_pages,
            "has_prev": page > 1,
        },
    }


def create_product(actor: User, data: dict) -> Product:
    """
    Create a product for the acting outlet (admins may pass outletId).
    """
    patch = _normalize_product_patch(data)
    if "name" not in patch or "price_cents" not in patch:
        raise ValidationError("Missing required fields: name, price_cents")

    outlet_id = actor.id
    if actor.role == ROLE_ADMIN:
        requested = data.get("outletId") or data.get("outlet_id")
        outlet_id = parse_int(requested, "outletId", minimum=1) if requested is not None else None
        if outlet_id is not None:
            outlet = db.session.get(User, outlet_id)
            if not outlet or outlet.role != ROLE_OUTLET:
                raise NotFoundError("Outlet not found")

    product = Product(outlet_id=outlet_id, **patch)
    product.quantity = patch.get("quantity", 0)
    db.session.add(product)
    db.session.commit()
    return product


def update_product(actor: User, product_id: int, data: dict) -> Product:
    product = get_product(product_id)
    _require_owner(actor, product)

    for column, value in _normalize_product_patch(data).items():
        setattr(product, column, value)

    db.session.commit()
    return product


def delete_product(actor: User, product_id: int) -> None:
    product = get_product(product_id)
    _require_owner(actor, product)
    db.session.delete(product)
    db.session.commit()


def _insufficient(product: Product) -> ValidationError:
    return ValidationError(f"Insufficient stock for {product.name}. Available: {product.quantity}")


def _decrement(product_id: int, quantity: int) -> bool:
    """Conditional UPDATE; False when the row had fewer than `quantity` left."""
    updated = (
        db.session.query(Product)
        .filter(Product.id == product_id, Product.quantity >= quantity)
        .update({Product.quantity: Product.quantity - quantity}, synchronize_session=False)
    )
    return bool(updated)


def check_stock(products: dict[int, Product], wanted: dict[int, int]) -> None:
    """Raise the insufficient-stock error for the first product short of `wanted`."""
    for product_id, quantity in wanted.items():
        product = products[product_id]
        if product.quantity < quantity:
            raise _insufficient(product)


def deduct_stock(wanted: dict[int, int], *, strict: bool = True) -> list[int]:
    """
    Take {product_id: quantity} out of stock inside the caller's transaction.

    strict: any shortfall raises ValidationError and nothing is committed.
    Otherwise short rows are floored at zero and their ids returned; this is
    the path for orders that are already paid for.
    """
    short = []
    for product_id, quantity in sorted(wanted.items()):
        if _decrement(product_id, quantity):
            continue
        product = db.session.get(Product, product_id)
        if product is None:
            continue
        if strict:
            db.session.refresh(product)
            raise _insufficient(product)
        db.session.query(Product).filter(Product.id == product_id).update(
            {Product.quantity: 0}, synchronize_session=False
        )
        short.append(product_id)
    return short


def purchase_product(product_id: int, quantity) -> Product:
    """
    Decrement stock by quantity.

    One conditional UPDATE (quantity >= n) so concurrent purchases can
    never drive the counter negative.

    Raises:
        ValidationError: quantity < 1 or insufficient stock
        NotFoundError: unknown product
    """
    quantity = parse_int(quantity, "quantity", minimum=1)

    def _op():
        product = get_product(product_id)
        if not _decrement(product_id, quantity):
            raise _insufficient(product)
        db.session.commit()
        db.session.refresh(product)
        return product

    return run_with_retry(_op)


def create_category(actor: User, data: dict) -> Category:
    require_fields(data, "name")
    name = check_length(data["name"], "name", 120)
    if db.session.query(Category).filter(Category.name == name).first():
        raise ConflictError("Category already exists")

    category = Category(
        name=name,
        description=data.get("description"),
        outlet_id=actor.id if actor.role == ROLE_OUTLET else None,
        featured=bool(data.get("featured", False)),
    )
    db.session.add(category)
    db.session.commit()
    return category


def list_categories(*, featured: bool | None = None, search: str | None = None) -> list[Category]:
    query = db.session.query(Category)
    if featured is not None:
        query = query.filter(Category.featured.is_(featured))
    if search:
        pattern = f"%{search.strip()}%"
        query = query.filter(or_(Category.name.ilike(pattern), Category.description.ilike(pattern)))
    return query.order_by(Category.name.asc()).all()


def get_category(category_id: int) -> Category:
    category = db.session.get(Category, category_id)
    if not category:
        raise NotFoundError("Category not found")
    return category


def _require_category_owner(actor: User, category: Category) -> None:
    # Shared categories (no outlet) are admin-only
    if actor.role == ROLE_ADMIN:
        return
    if actor.role == ROLE_OUTLET and category.outlet_id is not None and category.outlet_id == actor.id:
        return
    raise PermissionDeniedError("You can only manage your own categories")


def update_category(actor: User, category_id: int, data: dict) -> Category:
    category = get_category(category_id)
    _require_category_owner(actor, category)

    if data.get("name"):
        name = check_length(data["name"], "name", 120)
        clash = db.session.query(Category).filter(Category.name == name, Category.id != category.id).first()
        if clash:
            raise ConflictError("Category already exists")
        category.name = name
    if "description" in data:
        category.description = data["description"]
    if "featured" in data:
        category.featured = bool(data["featured"])

    db.session.commit()
    return category


def delete_category(actor: User, category_id: int) -> None:
    """Delete a category; its products stay in the catalog uncategorized."""
    category = get_category(category_id)
    _require_category_owner(actor, category)
    db.session.query(Product).filter(Product.category_id == category.id).update(
        {Product.category_id: None}, synchronize_session=False
    )
    db.session.delete(category)
    db.session.commit()


def add_review(actor: User, product_id: int, data: dict) -> ProductReview:
    """
    Record the actor's review and refresh the product's average rating.

    Raises:
        ValidationError: missing fields, rating outside 1-5, or the actor
            has already reviewed this product
        NotFoundError: unknown product
    """
    product = get_product(product_id)
    require_fields(data, "rating", "comment")
    rating = parse_int(data["rating"], "rating", minimum=MIN_RATING)
    if rating > MAX_RATING:
        raise ValidationError(f"rating must be at most {MAX_RATING}")
    comment = str(data["comment"]).strip()
    if not comment:
        raise ValidationError("comment cannot be blank")

    existing = db.session.query(ProductReview).filter_by(product_id=product.id, user_id=actor.id).first()
    if existing:
        raise ValidationError("You have already reviewed this product")

    review = ProductReview(
        product_id=product.id,
        user_id=actor.id,
        name=actor.name,
        rating=rating,
        comment=comment,
    )
    db.session.add(review)
    db.session.flush()

    count, average = (
        db.session.query(db.func.count(ProductReview.id), db.func.avg(ProductReview.rating))
        .filter(ProductReview.product_id == product.id)
        .one()
    )
    product.num_reviews = count
    product.rating = round(float(average or 0), 2)
    db.session.commit()
    return review


def list_reviews(product_id: int) -> list[ProductReview]:
    product = get_product(product_id)
    return (
        db.session.query(ProductReview)
        .filter(ProductReview.product_id == product.id)
        .order_by(ProductReview.created_at.desc(), ProductReview.id.desc())
        .all()
    )
