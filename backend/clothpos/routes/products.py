# Overview: Flask API routes for catalog operations; parses input and returns JSON responses.

# backend/clothpos/routes/products.py
"""
Product catalog routes.

Store scoping: list/lookup/create take store_id explicitly (query string or
body). Routes addressed by product id accept an optional store_id and return
404 when the product belongs to another store.
"""
from flask import Blueprint, request, current_app

from ..models import Product
from ..validation import (
    ModelValidationPolicy,
    validate_payload,
    enforce_rules_product,
)
from ..errors import DOMAIN_ERRORS, error_response

products_bp = Blueprint("products", __name__, url_prefix="/api/products")

PRODUCT_FIELDS = {
    "kind",
    "sku",
    "barcode",
    "name",
    "description",
    "category_id",
    "subcategory_id",
    "brand_id",
    "color",
    "fabric_type",
    "pattern",
    "design_number",
    "collection_name",
    "size",
    "piece_count",
    "warranty_months",
    "buying_price",
    "selling_price",
    "stock_level",
    "min_stock_level",
    "total_meters",
    "meters_per_unit",
    "can_sell_separate",
    "can_sell_partial_set",
    "is_active",
}

PRODUCT_CREATE_POLICY = ModelValidationPolicy(
    writable_fields=PRODUCT_FIELDS | {"store_id"},
    required_on_create={"store_id", "kind", "sku", "name"},
    extra_fields={"components", "partial_set_prices", "initial_stock"},
)

PRODUCT_UPDATE_POLICY = ModelValidationPolicy(
    writable_fields=PRODUCT_FIELDS,
    extra_fields={"components", "partial_set_prices", "initial_stock"},
)


def _flag(name: str) -> bool:
    return (request.args.get(name) or "").strip().lower() in {"1", "true", "yes"}


@products_bp.get("")
def list_products():
    """
    List products of a store.

    Query params:
    - store_id: int (required)
    - search: matches name, SKU or barcode
    - kind: SIMPLE | RAW_MATERIAL | COMBO_SET
    - low_stock: 1/true keeps products at or below min_stock_level
    - include_inactive: 1/true includes soft-deleted products
    - page / per_page: optional pagination (per_page default 20, max 100)
    """
    from ..services.catalog_service import list_products as list_products_service

    store_id = request.args.get("store_id", type=int)
    if store_id is None:
        return {"error": "store_id is required"}, 400

    try:
        return list_products_service(
            store_id=store_id,
            search=request.args.get("search"),
            kind=request.args.get("kind"),
            low_stock=_flag("low_stock"),
            include_inactive=_flag("include_inactive"),
            page=request.args.get("page", type=int),
            per_page=request.args.get("per_page", type=int),
        )
    except DOMAIN_ERRORS as e:
        return error_response(e)


@products_bp.post("")
def create_product():
    from ..services.catalog_service import create_product as create_product_service
    from ..services.sale_lock_service import lock_status

    payload = request.get_json(silent=True) or {}

    try:
        patch = validate_payload(model=Product, payload=payload, policy=PRODUCT_CREATE_POLICY, partial=False)
        enforce_rules_product(patch)
        store_id = patch.pop("store_id")
        product = create_product_service(store_id=store_id, data=patch)
    except DOMAIN_ERRORS as e:
        return error_response(e)
    except Exception:
        current_app.logger.exception("Failed to create product")
        return {"error": "Failed to create product"}, 500

    return {"product": product.to_dict(), "lock": lock_status(product)}, 201


@products_bp.get("/<int:product_id>")
def get_product(product_id: int):
    from ..services.catalog_service import get_product as get_product_service
    from ..services.sale_lock_service import lock_status

    try:
        product = get_product_service(product_id, store_id=request.args.get("store_id", type=int))
    except DOMAIN_ERRORS as e:
        return error_response(e)
    return {"product": product.to_dict(), "lock": lock_status(product)}


@products_bp.patch("/<int:product_id>")
def update_product(product_id: int):
    """
    Edit a product.

    Locked products (any sale references them) reject changes to prices,
    component prices, partial-set prices and initial stock with 400.
    initial_stock: {entry_id?, component_name?, quantity?, buying_price?,
    supplier_id?} or a list of those, unlocked products only.
    """
    from ..services.catalog_service import update_product as update_product_service
    from ..services.sale_lock_service import lock_status

    payload = request.get_json(silent=True) or {}

    try:
        patch = validate_payload(model=Product, payload=payload, policy=PRODUCT_UPDATE_POLICY, partial=True)
        enforce_rules_product(patch)
        product = update_product_service(
            product_id=product_id,
            patch=patch,
            store_id=request.args.get("store_id", type=int),
        )
    except DOMAIN_ERRORS as e:
        return error_response(e)
    except Exception:
        current_app.logger.exception("Failed to update product %s", product_id)
        return {"error": "Failed to update product"}, 500

    return {"product": product.to_dict(), "lock": lock_status(product)}


@products_bp.delete("/<int:product_id>")
def delete_product(product_id: int):
    """Soft delete (is_active=false). Products are never hard-deleted."""
    from ..services.catalog_service import deactivate_product

    try:
        product = deactivate_product(product_id=product_id, store_id=request.args.get("store_id", type=int))
    except DOMAIN_ERRORS as e:
        return error_response(e)
    return {"product": product.to_dict()}


@products_bp.get("/<int:product_id>/lock")
def product_lock(product_id: int):
    from ..services.catalog_service import get_product as get_product_service
    from ..services.sale_lock_service import lock_status

    try:
        product = get_product_service(product_id, store_id=request.args.get("store_id", type=int))
    except DOMAIN_ERRORS as e:
        return error_response(e)
    return lock_status(product)


@products_bp.get("/lookup")
def lookup_product():
    """Find one product by SKU (case-insensitive) or barcode: ?store_id=&sku= | &barcode="""
    from ..services.catalog_service import get_product_by_sku, get_product_by_barcode

    store_id = request.args.get("store_id", type=int)
    sku = request.args.get("sku")
    barcode = request.args.get("barcode")
    if store_id is None:
        return {"error": "store_id is required"}, 400
    if not sku and not barcode:
        return {"error": "sku or barcode is required"}, 400

    try:
        product = get_product_by_sku(store_id, sku) if sku else get_product_by_barcode(store_id, barcode)
    except DOMAIN_ERRORS as e:
        return error_response(e)
    return {"product": product.to_dict()}


@products_bp.get("/barcode-check")
def barcode_check():
    from ..services.catalog_service import barcode_exists

    store_id = request.args.get("store_id", type=int)
    if store_id is None:
        return {"error": "store_id is required"}, 400

    exists = barcode_exists(
        store_id,
        request.args.get("barcode"),
        exclude_id=request.args.get("exclude_id", type=int),
    )
    return {"exists": exists}
