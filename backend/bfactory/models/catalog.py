from __future__ import annotations

from ..extensions import db
from bfactory.time_utils import to_utc_z


class Category(db.Model):
    __tablename__ = "categories"
    __table_args__ = {"sqlite_autoincrement": True}

    id = db.Column(db.Integer, primary_key=True)
    name = db.Column(db.String(120), nullable=False, unique=True)
    description = db.Column(db.Text, nullable=True)
    outlet_id = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=True, index=True)
    featured = db.Column(db.Boolean, nullable=False, default=False)
    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "name": self.name,
            "description": self.description,
            "outlet_id": self.outlet_id,
            "featured": self.featured,
            "created_at": to_utc_z(self.created_at),
        }


class Product(db.Model):
    """
    Catalog item owned by an outlet.

    quantity is the available stock counter; it only moves through
    conditional/atomic UPDATE expressions (purchase, restock approval).
    """
    __tablename__ = "products"
    __table_args__ = (
        db.CheckConstraint("quantity >= 0", name="ck_products_quantity_nonnegative"),
        db.CheckConstraint("price_cents >= 0", name="ck_products_price_nonnegative"),
        db.Index("ix_products_outlet_category", "outlet_id", "category_id"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    outlet_id = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=True, index=True)
    category_id = db.Column(db.Integer, db.ForeignKey("categories.id"), nullable=True, index=True)

    name = db.Column(db.String(200), nullable=False)
    description = db.Column(db.Text, nullable=True)
    image_url = db.Column(db.String(512), nullable=True)

    price_cents = db.Column(db.Integer, nullable=False)
    quantity = db.Column(db.Integer, nullable=False, default=0)

    # Average of ProductReview.rating, recomputed on every review
    rating = db.Column(db.Float, nullable=False, default=0.0)
    num_reviews = db.Column(db.Integer, nullable=False, default=0)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())
    updated_at = db.Column(db.DateTime(timezone=True), nullable=True, onupdate=db.func.now())

    category = db.relationship("Category", backref=db.backref("products", lazy=True))
    outlet = db.relationship("User", backref=db.backref("products", lazy=True))

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "outlet_id": self.outlet_id,
            "category_id": self.category_id,
            "category": self.category.name if self.category else None,
            "name": self.name,
            "description": self.description,
            "image_url": self.image_url,
            "price_cents": self.price_cents,
            "quantity": self.quantity,
            "rating": self.rating,
            "num_reviews": self.num_reviews,
            "created_at": to_utc_z(self.created_at),
            "updated_at": to_utc_z(self.updated_at) if self.updated_at else None,
        }


class ProductReview(db.Model):
    """One rating (1-5) per user per product."""
    __tablename__ = "product_reviews"
    __table_args__ = (
        db.UniqueConstraint("product_id", "user_id", name="uq_product_review_user"),
        db.CheckConstraint("rating >= 1 AND rating <= 5", name="ck_product_reviews_rating_range"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    product_id = db.Column(db.Integer, db.ForeignKey("products.id", ondelete="CASCADE"), nullable=False, index=True)
    user_id = db.Column(db.Integer, db.ForeignKey("users.id", ondelete="CASCADE"), nullable=False, index=True)

    name = db.Column(db.String(120), nullable=False)
    rating = db.Column(db.Integer, nullable=False)
    comment = db.Column(db.Text, nullable=False)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())

    product = db.relationship(
        "Product",
        backref=db.backref("reviews", lazy=True, cascade="all, delete-orphan", order_by="ProductReview.id"),
    )

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "product_id": self.product_id,
            "user_id": self.user_id,
            "name": self.name,
            "rating": self.rating,
            "comment": self.comment,
            "created_at": to_utc_z(self.created_at),
        }
