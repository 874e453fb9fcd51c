"""Inventory read models: raw material locked in built stock, and the
per-SKU inventory summary shown by inventory views."""

from __future__ import annotations

import logging
from dataclasses import dataclass

from buildledger.models import InventoryState, SkuKind
from buildledger.services import ledger
from buildledger.services.catalog import BomGraph, list_skus
from buildledger.services.explosion import explode, merge_requirements

logger = logging.getLogger(__name__)


def in_assembly(*, graph: BomGraph | None = None, max_depth: int | None = None) -> dict[int, int]:
    """Return ``{raw sku id: quantity}`` currently locked inside built units.

    Every active assembly/completed SKU with positive stock in its natural
    bucket is exploded to raw materials and the results are summed. Nothing
    is cached; the whole map is rebuilt on each call.
    """

    graph = graph or BomGraph.load()
    built_states = (InventoryState.ASSEMBLED, InventoryState.COMPLETED)
    quantities = ledger.quantities_by_sku(built_states)

    exploded = []
    for node in graph.nodes():
        if not node.kind.is_buildable:
            continue
        built = quantities.get(node.id, {}).get(node.kind.natural_state, 0)
        if built <= 0:
            continue
        exploded.append(explode(graph, node.id, built, max_depth=max_depth))

    locked = merge_requirements(*exploded)
    logger.debug("Computed in-assembly quantities for %d raw SKU(s)", len(locked))
    return locked


@dataclass(frozen=True)
class InventorySummaryRow:
    sku_id: int
    code: str
    name: str
    kind: SkuKind
    category: str
    received: int
    available: int
    total: int
    in_assembly: int

    @property
    def backlog(self) -> bool:
        return self.available < 0

    def to_dict(self) -> dict:
        return {
            "sku_id": self.sku_id,
            "sku": self.code,
            "name": self.name,
            "kind": self.kind.value,
            "category": self.category,
            "received": self.received,
            "available": self.available,
            "total": self.total,
            "in_assembly": self.in_assembly,
            "backlog": self.backlog,
        }


def get_inventory_summary(*, kind=None, search: str | None = None) -> list[InventorySummaryRow]:
    skus = list_skus(kind=kind, search=search)
    quantities = ledger.quantities_by_sku()

    locked: dict[int, int] = {}
    if any(sku.kind is SkuKind.RAW for sku in skus):
        locked = in_assembly()

    rows = []
    for sku in skus:
        by_state = quantities.get(sku.id, {state: 0 for state in InventoryState})
        rows.append(
            InventorySummaryRow(
                sku_id=sku.id,
                code=sku.code,
                name=sku.name,
                kind=sku.kind,
                category=sku.category or "",
                received=by_state[InventoryState.RECEIVED],
                available=by_state[sku.natural_state],
                total=sum(by_state.values()),
                in_assembly=locked.get(sku.id, 0),
            )
        )
    return rows
