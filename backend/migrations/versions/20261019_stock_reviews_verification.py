"""Order stock tracking, product reviews and outlet verification

Revision ID: 20261019_stock_reviews
Revises: 20261018_initial
Create Date: 2026-10-19
"""

from alembic import op
import sqlalchemy as sa


# revision identifiers, used by Alembic.
revision = "20261019_stock_reviews"
down_revision = "20261018_initial"
branch_labels = None
depends_on = None


NOW = sa.text("(CURRENT_TIMESTAMP)")


def upgrade():
    with op.batch_alter_table("orders", schema=None) as batch_op:
        batch_op.add_column(sa.Column("stock_deducted_at", sa.DateTime(timezone=True), nullable=True))

    with op.batch_alter_table("users", schema=None) as batch_op:
        batch_op.add_column(sa.Column("is_verified", sa.Boolean(), nullable=False, server_default=sa.false()))
        batch_op.add_column(sa.Column("verified_at", sa.DateTime(timezone=True), nullable=True))

    with op.batch_alter_table("products", schema=None) as batch_op:
        batch_op.add_column(sa.Column("rating", sa.Float(), nullable=False, server_default="0"))
        batch_op.add_column(sa.Column("num_reviews", sa.Integer(), nullable=False, server_default="0"))

    op.create_table(
        "product_reviews",
        sa.Column("id", sa.Integer(), nullable=False),
        sa.Column("product_id", sa.Integer(), nullable=False),
        sa.Column("user_id", sa.Integer(), nullable=False),
        sa.Column("name", sa.String(120), nullable=False),
        sa.Column("rating", sa.Integer(), nullable=False),
        sa.Column("comment", sa.Text(), nullable=False),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=NOW, nullable=False),
        sa.CheckConstraint("rating >= 1 AND rating <= 5", name="ck_product_reviews_rating_range"),
        sa.ForeignKeyConstraint(["product_id"], ["products.id"], ondelete="CASCADE"),
        sa.ForeignKeyConstraint(["user_id"], ["users.id"], ondelete="CASCADE"),
        sa.PrimaryKeyConstraint("id"),
        sa.UniqueConstraint("product_id", "user_id", name="uq_product_review_user"),
        sqlite_autoincrement=True,
    )
    with op.batch_alter_table("product_reviews", schema=None) as batch_op:
        batch_op.create_index("ix_product_reviews_product_id", ["product_id"], unique=False)
        batch_op.create_index("ix_product_reviews_user_id", ["user_id"], unique=False)


def downgrade():
    with op.batch_alter_table("product_reviews", schema=None) as batch_op:
        batch_op.drop_index("ix_product_reviews_user_id")
        batch_op.drop_index("ix_product_reviews_product_id")
    op.drop_table("product_reviews")

    with op.batch_alter_table("products", schema=None) as batch_op:
        batch_op.drop_column("num_reviews")
        batch_op.drop_column("rating")

    with op.batch_alter_table("users", schema=None) as batch_op:
        batch_op.drop_column("verified_at")
        batch_op.drop_column("is_verified")

    with op.batch_alter_table("orders", schema=None) as batch_op:
        batch_op.drop_column("stock_deducted_at")
