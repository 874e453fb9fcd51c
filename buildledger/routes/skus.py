from __future__ import annotations

from flask import Blueprint, current_app, jsonify, request

from buildledger.errors import CatalogError, InvalidQuantity
from buildledger.services import catalog, planning
from buildledger.services.catalog import BomGraph
from buildledger.services.explosion import explode
from buildledger.utils.quantities import coerce_quantity

bp = Blueprint("skus", __name__, url_prefix="/api/skus")


def _payload() -> dict:
    payload = request.get_json(silent=True)
    if payload is None:
        payload = request.form.to_dict()
    if not isinstance(payload, dict):
        raise CatalogError("Request body must be a JSON object.")
    return payload


def _quantity_arg(default: int = 1) -> int:
    raw_value = request.args.get("quantity")
    if raw_value is None or not raw_value.strip():
        return default
    return coerce_quantity(raw_value, minimum=0)


def _sku_detail(sku) -> dict:
    detail = sku.to_dict()
    detail["components"] = [
        {
            "sku": line.component.code,
            "name": line.component.name,
            "kind": line.component.kind.value,
            "quantity": line.quantity,
            "is_active": bool(line.component.is_active),
        }
        for line in sku.components
    ]
    return detail


@bp.get("")
def list_skus():
    include_inactive = request.args.get("include_inactive", "").lower() in {"1", "true", "yes"}
    skus = catalog.list_skus(
        kind=request.args.get("kind") or None,
        search=request.args.get("search"),
        include_inactive=include_inactive,
    )
    return jsonify({"skus": [sku.to_dict() for sku in skus]})


@bp.post("")
def create_sku():
    payload = _payload()
    sku = catalog.create_sku(
        payload.get("code") or payload.get("sku"),
        payload.get("name"),
        payload.get("kind") or payload.get("type"),
        category=payload.get("category"),
        process=payload.get("process"),
    )
    components = payload.get("components")
    if components:
        catalog.set_bom(sku, _component_pairs(components))
    current_app.logger.info("SKU %s created via API", sku.code)
    return jsonify(_sku_detail(sku)), 201


@bp.get("/<code>")
def get_sku(code):
    sku = catalog.get_sku(code, include_inactive=True)
    return jsonify(_sku_detail(sku))


@bp.patch("/<code>")
def update_sku(code):
    payload = _payload()
    sku = catalog.update_sku(
        code,
        name=payload.get("name"),
        kind=payload.get("kind"),
        category=payload.get("category"),
        process=payload.get("process"),
    )
    return jsonify(_sku_detail(sku))


@bp.post("/<code>/deactivate")
def deactivate_sku(code):
    sku = catalog.deactivate_sku(code)
    return jsonify(sku.to_dict())


def _component_pairs(components) -> list[tuple[object, object]]:
    if not isinstance(components, list):
        raise CatalogError("Components must be a list.")
    pairs = []
    for component in components:
        if not isinstance(component, dict):
            raise CatalogError("Each component needs a sku and a quantity.")
        reference = component.get("sku") or component.get("code")
        if "quantity" not in component:
            raise InvalidQuantity(None, f"Missing quantity for component {reference}.")
        pairs.append((reference, component["quantity"]))
    return pairs


@bp.put("/<code>/bom")
def set_bom(code):
    payload = _payload()
    components = _component_pairs(payload.get("components", []))
    if components:
        sku = catalog.set_bom(code, components)
    else:
        sku = catalog.clear_bom(code)
    return jsonify(_sku_detail(sku))


@bp.get("/<code>/used-in")
def used_in(code):
    products = catalog.get_used_in(code)
    return jsonify(
        {"sku": code.strip().upper(), "used_in": [product.to_dict() for product in products]}
    )


@bp.get("/<code>/explode")
def explode_sku(code):
    quantity = _quantity_arg()
    graph = BomGraph.load()
    node = graph.find_by_code(code)
    requirements = explode(graph, node.id, quantity)
    return jsonify(
        {
            "sku": node.code,
            "quantity": quantity,
            "raw_materials": [
                {"sku_id": sku_id, "sku": graph.get_code(sku_id), "quantity": total}
                for sku_id, total in requirements.items()
            ],
        }
    )


@bp.get("/<code>/requirements")
def requirements(code):
    quantity = _quantity_arg()
    lines = planning.calculate_total_requirements(code, quantity)
    return jsonify(
        {
            "sku": code.strip().upper(),
            "quantity": quantity,
            "requirements": [line.to_dict() for line in lines],
        }
    )


@bp.get("/<code>/eligibility")
def eligibility(code):
    return jsonify(planning.calculate_build_eligibility(code).to_dict())


@bp.get("/eligibility")
def all_eligibility():
    return jsonify(
        {"eligibility": [entry.to_dict() for entry in planning.get_all_build_eligibility()]}
    )
