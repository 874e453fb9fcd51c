from flask import Blueprint, jsonify, request

from buildledger.errors import InvalidQuantity
from buildledger.models import InventoryState
from buildledger.services import catalog, ledger, rollup, stock_updates
from buildledger.services.catalog import BomGraph
from buildledger.utils.csv_export import export_rows_to_csv

bp = Blueprint("inventory", __name__, url_prefix="/api/inventory")


SUMMARY_COLUMNS = (
    ("code", "SKU"),
    ("name", "Name"),
    ("kind", "Type"),
    ("category", "Category"),
    ("received", "Received"),
    ("available", "Available"),
    ("in_assembly", "In Assembly"),
    ("total", "Total"),
)


############################
# READS
############################
@bp.get("")
def inventory_home():
    rows = rollup.get_inventory_summary(
        kind=request.args.get("kind") or None,
        search=request.args.get("search"),
    )
    return jsonify({"inventory": [row.to_dict() for row in rows]})


@bp.get("/<code>")
def sku_inventory(code):
    sku = catalog.get_sku(code)
    by_state = ledger.get_quantities(sku.id)
    return jsonify(
        {
            "sku": sku.code,
            "name": sku.name,
            "kind": sku.kind.value,
            "by_state": {state.value: quantity for state, quantity in by_state.items()},
            "available": by_state[sku.natural_state],
            "total": sum(by_state.values()),
        }
    )


@bp.get("/in-assembly")
def in_assembly():
    graph = BomGraph.load()
    locked = rollup.in_assembly(graph=graph)
    rows = sorted(
        (
            {"sku_id": sku_id, "sku": graph.get_code(sku_id), "quantity": quantity}
            for sku_id, quantity in locked.items()
        ),
        key=lambda row: row["sku"],
    )
    return jsonify({"in_assembly": rows})


@bp.get("/export")
def export_inventory():
    rows = rollup.get_inventory_summary(
        kind=request.args.get("kind") or None,
        search=request.args.get("search"),
    )
    return export_rows_to_csv(rows, SUMMARY_COLUMNS, "inventory.csv")


############################
# WRITES
############################
def _json_body():
    payload = request.get_json(silent=True)
    if payload is None:
        raise InvalidQuantity(None, "Request body must be JSON.")
    return payload


@bp.post("/quantity")
def set_quantity():
    payload = _json_body()
    if not isinstance(payload, dict):
        raise InvalidQuantity(payload, "Request body must be a JSON object.")
    update = stock_updates.set_quantity(
        payload.get("sku"),
        payload.get("state") or _default_state(payload.get("sku")),
        payload.get("quantity"),
    )
    return jsonify(update.to_dict())


def _default_state(code) -> InventoryState:
    return catalog.get_sku(code).natural_state


@bp.post("/batch")
def batch_update():
    payload = _json_body()
    entries = payload.get("entries") if isinstance(payload, dict) else payload
    if not isinstance(entries, list):
        raise InvalidQuantity(entries, "Batch updates need a list of entries.")
    report = stock_updates.apply_batch(entries)
    return jsonify(report.to_dict())
