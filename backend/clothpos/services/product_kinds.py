# Overview: Kind-specific rules for products; derived fields, unit semantics and invariant checks.

"""
Product kinds (authoritative)

SIMPLE        unit "pcs"   stock_level counts pieces
RAW_MATERIAL  unit "meter" stock_level == total_meters
                           calculated_units == floor(total_meters / meters_per_unit)
                           (0 when meters_per_unit is 0)
COMBO_SET     unit "set"   total_combo_meters == sum(component.meters)
                           stock_level == min(component.stock_level)

Every consumer dispatches through KIND_RULES so adding a kind without its rules
fails at import time instead of silently falling through a conditional.
"""

from __future__ import annotations

from dataclasses import dataclass
from decimal import Decimal
from typing import Any, Callable

from flask import current_app

from ..errors import ConsistencyViolationError
from ..models import (
    Product,
    KIND_SIMPLE,
    KIND_RAW_MATERIAL,
    KIND_COMBO_SET,
    PRODUCT_KINDS,
    COMBO_COMPONENT_NAMES,
)
from ..validation import ValidationError, to_decimal, require_non_negative, QUANTITY_PLACES, MONEY_PLACES

ZERO = Decimal("0")

RAW_MATERIAL_FIELDS = {"total_meters", "meters_per_unit"}
COMBO_SET_FIELDS = {"components", "can_sell_separate", "can_sell_partial_set", "partial_set_prices"}
COMPONENT_PLACES = {
    "meters": QUANTITY_PLACES,
    "buying_price": MONEY_PLACES,
    "selling_price": MONEY_PLACES,
    "stock_level": QUANTITY_PLACES,
}


@dataclass(frozen=True)
class KindRules:
    unit: str
    derive: Callable[[Product], dict]
    allowed_fields: frozenset


def _derive_simple(product: Product) -> dict:
    return {"stock_level": product.stock_level if product.stock_level is not None else ZERO}


def _derive_raw_material(product: Product) -> dict:
    total = product.total_meters if product.total_meters is not None else ZERO
    per_unit = product.meters_per_unit if product.meters_per_unit is not None else ZERO
    units = int(total // per_unit) if per_unit > 0 else 0
    return {"stock_level": total, "calculated_units": units}


def _derive_combo_set(product: Product) -> dict:
    comps = list(product.components)
    total_meters = sum((c.meters for c in comps), ZERO)
    stock = min((c.stock_level for c in comps), default=ZERO)
    return {"total_combo_meters": total_meters, "stock_level": stock}


KIND_RULES: dict[str, KindRules] = {
    KIND_SIMPLE: KindRules("pcs", _derive_simple, frozenset()),
    KIND_RAW_MATERIAL: KindRules("meter", _derive_raw_material, frozenset(RAW_MATERIAL_FIELDS)),
    KIND_COMBO_SET: KindRules("set", _derive_combo_set, frozenset(COMBO_SET_FIELDS)),
}

if set(KIND_RULES) != set(PRODUCT_KINDS):
    raise RuntimeError("KIND_RULES must cover every product kind")


def rules_for(kind: str) -> KindRules:
    try:
        return KIND_RULES[kind]
    except KeyError:
        raise ValidationError(f"kind must be one of {', '.join(PRODUCT_KINDS)}")


def unit_for(kind: str) -> str:
    return rules_for(kind).unit


def derive(product: Product) -> dict:
    """Pure: the derived field values implied by the product's current inputs."""
    return rules_for(product.kind).derive(product)


def recompute_derived(product: Product) -> Product:
    """
    Re-derive kind-specific fields in place. Idempotent: a second call with
    no input change writes identical values.
    """
    for field, value in derive(product).items():
        setattr(product, field, value)
    unit = unit_for(product.kind)
    product.base_unit = unit
    product.sell_by_unit = unit
    return product


def check_invariants(product: Product) -> list[str]:
    """Return human-readable invariant violations (empty when consistent)."""
    problems: list[str] = []
    expected = derive(product)
    for field, value in expected.items():
        current = getattr(product, field)
        if current != value:
            problems.append(f"{field}={current} expected {value}")

    if product.stock_level is not None and product.stock_level < 0:
        problems.append(f"stock_level={product.stock_level} is negative")
    if product.kind == KIND_COMBO_SET:
        for comp in product.components:
            if comp.stock_level < 0:
                problems.append(f"component {comp.name} stock_level={comp.stock_level} is negative")
    if product.kind == KIND_RAW_MATERIAL and product.total_meters is not None and product.total_meters < 0:
        problems.append(f"total_meters={product.total_meters} is negative")
    return problems


def assert_invariants(product: Product) -> None:
    """
    Raise ConsistencyViolationError when derived state is wrong. The failure
    is logged and never patched here; the caller's transaction rolls back.
    """
    problems = check_invariants(product)
    if problems:
        message = f"Product {product.id} ({product.kind}) invariant violated: {'; '.join(problems)}"
        current_app.logger.error(message)
        raise ConsistencyViolationError(message)


# =============================================================================
# INPUT NORMALIZATION (kind-specific fields)
# =============================================================================

def normalize_kind_fields(kind: str, data: dict[str, Any]) -> dict[str, Any]:
    """
    Validate the kind-specific part of a create payload.

    RAW_MATERIAL: total_meters >= 0, meters_per_unit >= 0.
    COMBO_SET: >= 2 components with unique names from COMBO_COMPONENT_NAMES,
    meters/prices/stock >= 0; partial-set prices name 2 distinct components.
    SIMPLE: no extra fields.
    """
    rules = rules_for(kind)
    foreign = (RAW_MATERIAL_FIELDS | COMBO_SET_FIELDS) - rules.allowed_fields
    present = sorted(k for k in foreign if data.get(k) not in (None, [], False))
    if present:
        raise ValidationError(f"Fields not allowed for {kind}: {', '.join(present)}")

    if kind == KIND_RAW_MATERIAL:
        return {
            "total_meters": require_non_negative(
                to_decimal(data.get("total_meters", 0), "total_meters", QUANTITY_PLACES), "total_meters"
            ),
            "meters_per_unit": require_non_negative(
                to_decimal(data.get("meters_per_unit", 0), "meters_per_unit", QUANTITY_PLACES), "meters_per_unit"
            ),
        }

    if kind == KIND_COMBO_SET:
        components = normalize_components(data.get("components"))
        names = [c["name"] for c in components]
        return {
            "components": components,
            "can_sell_separate": bool(data.get("can_sell_separate", False)),
            "can_sell_partial_set": bool(data.get("can_sell_partial_set", False)),
            "partial_set_prices": normalize_partial_set_prices(data.get("partial_set_prices"), names),
        }

    return {}


def normalize_components(raw: Any) -> list[dict]:
    if not isinstance(raw, list) or len(raw) < 2:
        raise ValidationError("COMBO_SET requires at least 2 components")

    seen: set[str] = set()
    components = []
    for position, item in enumerate(raw):
        if not isinstance(item, dict):
            raise ValidationError("each component must be an object")
        name = str(item.get("name") or "").strip()
        if name not in COMBO_COMPONENT_NAMES:
            raise ValidationError(
                f"component name must be one of {', '.join(COMBO_COMPONENT_NAMES)}"
            )
        if name in seen:
            raise ValidationError(f"duplicate component {name}")
        seen.add(name)

        comp = {"name": name, "position": position}
        for field in ("meters", "buying_price", "selling_price", "stock_level"):
            label = f"{name}.{field}"
            comp[field] = require_non_negative(to_decimal(item.get(field, 0), label, COMPONENT_PLACES[field]), label)
        components.append(comp)
    return components


def normalize_partial_set_prices(raw: Any, component_names: list[str]) -> list[dict]:
    if raw in (None, []):
        return []
    if not isinstance(raw, list):
        raise ValidationError("partial_set_prices must be a list")

    prices = []
    for item in raw:
        if not isinstance(item, dict):
            raise ValidationError("each partial set price must be an object")
        names = item.get("components")
        if not isinstance(names, list) or len(names) != 2 or len(set(names)) != 2:
            raise ValidationError("Two-component price must have exactly 2 components")
        unknown = [n for n in names if n not in component_names]
        if unknown:
            raise ValidationError(f"partial set names unknown components: {', '.join(unknown)}")
        price = require_non_negative(to_decimal(item.get("selling_price"), "selling_price", MONEY_PLACES), "selling_price")
        prices.append({"components": list(names), "selling_price": price})
    return prices
