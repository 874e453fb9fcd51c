from __future__ import annotations

import logging
from dataclasses import dataclass

from buildledger.errors import DanglingBomEdge
from buildledger.models import InventoryState
from buildledger.services import ledger
from buildledger.services.catalog import BomGraph, get_sku
from buildledger.services.explosion import explode
from buildledger.utils.quantities import coerce_quantity

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class RequirementLine:
    sku_id: int
    code: str
    name: str
    per_unit: int
    total_required: int
    available: int

    @property
    def shortfall(self) -> int:
        return max(0, self.total_required - self.available)

    def to_dict(self) -> dict:
        return {
            "sku_id": self.sku_id,
            "sku": self.code,
            "name": self.name,
            "per_unit": self.per_unit,
            "total_required": self.total_required,
            "available": self.available,
            "shortfall": self.shortfall,
        }


def calculate_total_requirements(sku, quantity, *, graph: BomGraph | None = None):
    """Raw materials needed to build ``quantity`` units of ``sku`` from scratch,
    against current RAW stock."""

    quantity = coerce_quantity(quantity, minimum=0)
    sku = get_sku(sku)
    graph = graph or BomGraph.load()

    per_unit = explode(graph, sku.id, 1)
    lines = []
    for raw_id, unit_quantity in per_unit.items():
        node = graph.node(raw_id)
        lines.append(
            RequirementLine(
                sku_id=raw_id,
                code=node.code,
                name=node.name,
                per_unit=unit_quantity,
                total_required=unit_quantity * quantity,
                available=ledger.get_quantity(raw_id, InventoryState.RAW),
            )
        )
    lines.sort(key=lambda line: line.code)
    return lines


@dataclass(frozen=True)
class ComponentSupply:
    sku_id: int
    code: str
    name: str
    required: int
    available: int

    @property
    def can_supply(self) -> int:
        return max(0, self.available // self.required)

    @property
    def shortfall(self) -> int:
        return max(0, self.required - self.available)

    def to_dict(self) -> dict:
        return {
            "sku_id": self.sku_id,
            "sku": self.code,
            "name": self.name,
            "required": self.required,
            "available": self.available,
            "can_supply": self.can_supply,
        }


@dataclass(frozen=True)
class BuildEligibility:
    sku_id: int
    code: str
    name: str
    components: tuple[ComponentSupply, ...]

    @property
    def max_buildable(self) -> int:
        if not self.components:
            return 0
        return min(component.can_supply for component in self.components)

    @property
    def bottleneck(self) -> ComponentSupply | None:
        if not self.components:
            return None
        # First component with the lowest supply, in BOM order.
        return min(self.components, key=lambda component: component.can_supply)

    def to_dict(self) -> dict:
        bottleneck = self.bottleneck
        return {
            "sku_id": self.sku_id,
            "sku": self.code,
            "name": self.name,
            "max_buildable": self.max_buildable,
            "bottleneck": (
                {
                    "sku": bottleneck.code,
                    "name": bottleneck.name,
                    "available": bottleneck.available,
                    "required": bottleneck.required,
                    "shortfall": bottleneck.shortfall,
                }
                if bottleneck is not None
                else None
            ),
            "components": [component.to_dict() for component in self.components],
        }


def calculate_build_eligibility(sku, *, graph: BomGraph | None = None) -> BuildEligibility:
    """How many units of ``sku`` the on-hand immediate components can make."""

    sku = get_sku(sku)
    graph = graph or BomGraph.load()

    components = []
    for edge in graph.get_components(sku.id):
        if not graph.exists(edge.component_id):
            raise DanglingBomEdge(
                sku.code, edge.component_id, graph.retired_code(edge.component_id)
            )
        node = graph.node(edge.component_id)
        components.append(
            ComponentSupply(
                sku_id=node.id,
                code=node.code,
                name=node.name,
                required=edge.quantity,
                available=ledger.get_quantity(node.id, node.kind.natural_state),
            )
        )
    return BuildEligibility(
        sku_id=sku.id, code=sku.code, name=sku.name, components=tuple(components)
    )


def get_all_build_eligibility() -> list[BuildEligibility]:
    graph = BomGraph.load()
    results = []
    for node in graph.nodes():
        if not node.kind.is_buildable or not graph.get_components(node.id):
            continue
        try:
            results.append(calculate_build_eligibility(node.id, graph=graph))
        except DanglingBomEdge as exc:
            logger.warning("Skipped build eligibility for %s: %s", node.code, exc)
    results.sort(key=lambda entry: (-entry.max_buildable, entry.code))
    return results
