# Overview: Flask API routes for products and categories; parses input and returns JSON responses.

from flask import Blueprint, request, jsonify, g

from ..decorators import require_auth, require_role
from ..models.users import ROLE_ADMIN, ROLE_OUTLET
from ..services import catalog_service
from ..validation import parse_int


products_bp = Blueprint("products", __name__, url_prefix="/api/route")


@products_bp.post("/products")
@require_auth
@require_role(ROLE_OUTLET, ROLE_ADMIN)
def create_product_route():
    product = catalog_service.create_product(g.current_user, request.get_json(silent=True) or {})
    return jsonify({"success": True, "product": product.to_dict()}), 201


@products_bp.get("/allproducts")
def list_products_route():
    """
    Public listing.

    Query params: page, limit, search, categoryId, outletId. Without page
    the full list is returned.
    """
    args = request.args
    page = parse_int(args["page"], "page", minimum=1) if args.get("page") else None
    per_page = parse_int(args["limit"], "limit", minimum=1) if args.get("limit") else None
    category_id = parse_int(args["categoryId"], "categoryId", minimum=1) if args.get("categoryId") else None
    outlet_id = parse_int(args["outletId"], "outletId", minimum=1) if args.get("outletId") else None

    result = catalog_service.list_products(
        page=page,
        per_page=per_page,
        search=args.get("search"),
        category_id=category_id,
        outlet_id=outlet_id,
    )
    return jsonify({"success": True, **result})


@products_bp.get("/product/<int:product_id>")
def get_product_route(product_id: int):
    return jsonify({"success": True, "product": catalog_service.get_product(product_id).to_dict()})


@products_bp.put("/update/<int:product_id>")
@require_auth
@require_role(ROLE_OUTLET, ROLE_ADMIN)
def update_product_route(product_id: int):
    product = catalog_service.update_product(g.current_user, product_id, request.get_json(silent=True) or {})
    return jsonify({"success": True, "product": product.to_dict()})


@products_bp.put("/purchase/<int:product_id>")
def purchase_product_route(product_id: int):
    data = request.get_json(silent=True) or {}
    product = catalog_service.purchase_product(product_id, data.get("quantity"))
    return jsonify({"success": True, "message": "Purchase successful", "product": product.to_dict()})


@products_bp.delete("/delete/<int:product_id>")
@require_auth
@require_role(ROLE_OUTLET, ROLE_ADMIN)
def delete_product_route(product_id: int):
    catalog_service.delete_product(g.current_user, product_id)
    return jsonify({"success": True, "message": "Product has been deleted"})


@products_bp.post("/categories")
@require_auth
@require_role(ROLE_OUTLET, ROLE_ADMIN)
def create_category_route():
    category = catalog_service.create_category(g.current_user, request.get_json(silent=True) or {})
    return jsonify({"success": True, "category": category.to_dict()}), 201


@products_bp.get("/categories")
def list_categories_route():
    featured = request.args.get("featured")
    categories = catalog_service.list_categories(
        featured=None if featured is None else featured.lower() == "true",
        search=request.args.get("search"),
    )
    return jsonify({"success": True, "categories": [c.to_dict() for c in categories]})


@products_bp.put("/categories/<int:category_id>")
@require_auth
@require_role(ROLE_OUTLET, ROLE_ADMIN)
def update_category_route(category_id: int):
    category = catalog_service.update_category(g.current_user, category_id, request.get_json(silent=True) or {})
    return jsonify({"success": True, "category": category.to_dict()})


@products_bp.delete("/categories/<int:category_id>")
@require_auth
@require_role(ROLE_OUTLET, ROLE_ADMIN)
def delete_category_route(category_id: int):
    catalog_service.delete_category(g.current_user, category_id)
    return jsonify({"success": True, "message": "Category deleted successfully"})


@products_bp.post("/product/<int:product_id>/reviews")
@require_auth
def add_review_route(product_id: int):
    review = catalog_service.add_review(g.current_user, product_id, request.get_json(silent=True) or {})
    return jsonify({"success": True, "message": "Review added successfully", "review": review.to_dict()}), 201


@products_bp.get("/product/<int:product_id>/reviews")
def list_reviews_route(product_id: int):
    reviews = catalog_service.list_reviews(product_id)
    return jsonify({"success": True, "count": len(reviews), "reviews": [r.to_dict() for r in reviews]})
