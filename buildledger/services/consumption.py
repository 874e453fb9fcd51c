"""Automatic component consumption when built stock increases.

Only the immediate BOM level is deducted. Deeper levels were consumed when
the intermediate assemblies were themselves built.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field

from sqlalchemy.exc import SQLAlchemyError

from buildledger.errors import InvalidQuantity, UnknownSkuReference
from buildledger.extensions import db
from buildledger.models import InventoryState, Sku, SkuKind
from buildledger.services import ledger
from buildledger.services.catalog import BomGraph
from buildledger.utils.quantities import coerce_quantity

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class Deduction:
    sku_id: int
    sku_code: str
    state: InventoryState
    quantity: int
    new_quantity: int

    def to_dict(self) -> dict:
        return {
            "sku_id": self.sku_id,
            "sku": self.sku_code,
            "state": self.state.value,
            "quantity": self.quantity,
            "new_quantity": self.new_quantity,
        }


@dataclass(frozen=True)
class ComponentFailure:
    sku_id: int
    sku_code: str
    reason: str

    def to_dict(self) -> dict:
        return {"sku_id": self.sku_id, "sku": self.sku_code, "reason": self.reason}


@dataclass(frozen=True)
class DeductionReport:
    sku_id: int
    sku_code: str
    quantity_delta: int
    deductions: tuple[Deduction, ...] = ()
    failures: tuple[ComponentFailure, ...] = ()

    @property
    def ok(self) -> bool:
        return not self.failures

    def summary(self) -> str:
        if not self.deductions:
            return ""
        parts = ", ".join(
            f"{deduction.quantity} {deduction.sku_code}" for deduction in self.deductions
        )
        return f"Auto-deducted {parts}"

    def to_dict(self) -> dict:
        return {
            "sku_id": self.sku_id,
            "sku": self.sku_code,
            "quantity_delta": self.quantity_delta,
            "deductions": [deduction.to_dict() for deduction in self.deductions],
            "failures": [failure.to_dict() for failure in self.failures],
        }


@dataclass(frozen=True)
class ConsumptionPartialFailure:
    """The parent quantity was saved but some component deductions were not."""

    sku_code: str
    state: InventoryState
    new_quantity: int
    failures: tuple[ComponentFailure, ...] = field(default_factory=tuple)

    @property
    def message(self) -> str:
        details = "; ".join(
            f"{failure.sku_code}: {failure.reason}" for failure in self.failures
        )
        return (
            f"Quantity for {self.sku_code} was updated to {self.new_quantity} "
            f"but auto-deduction failed for {details}"
        )

    def to_dict(self) -> dict:
        return {
            "sku": self.sku_code,
            "state": self.state.value,
            "new_quantity": self.new_quantity,
            "failures": [failure.to_dict() for failure in self.failures],
            "message": self.message,
        }


def _component_code(graph: BomGraph, sku_id: int) -> str:
    if graph.exists(sku_id):
        return graph.get_code(sku_id)
    sku = db.session.get(Sku, sku_id)
    return sku.code if sku is not None else f"#{sku_id}"


def apply_build_delta(sku_id: int, quantity_delta, *, graph: BomGraph | None = None) -> DeductionReport:
    """Deduct the immediate components of ``sku_id`` for ``quantity_delta`` new units.

    Non-positive deltas and raw materials produce an empty report without
    touching the ledger. Missing or inactive components are recorded as
    failures while the remaining components are still deducted. So is a
    deduction that would push a counter outside the ledger range. Commits the
    session.
    """

    quantity_delta = coerce_quantity(quantity_delta)
    graph = graph or BomGraph.load()
    parent = graph.node(sku_id)

    if quantity_delta <= 0 or parent.kind is SkuKind.RAW:
        return DeductionReport(sku_id=sku_id, sku_code=parent.code, quantity_delta=quantity_delta)

    deductions: list[Deduction] = []
    failures: list[ComponentFailure] = []

    for edge in graph.get_components(sku_id):
        required = quantity_delta * edge.quantity
        try:
            component = graph.node(edge.component_id)
        except UnknownSkuReference:
            code = _component_code(graph, edge.component_id)
            failures.append(
                ComponentFailure(
                    sku_id=edge.component_id,
                    sku_code=code,
                    reason="component SKU is missing or inactive",
                )
            )
            logger.warning(
                "Skipped deduction of %d %s for %s: component is missing or inactive",
                required,
                code,
                parent.code,
            )
            continue

        bucket = component.kind.natural_state
        try:
            with db.session.begin_nested():
                new_quantity = ledger.adjust_quantity(component.id, bucket, -required)
        except InvalidQuantity as exc:
            logger.warning(
                "Skipped deduction of %d %s for %s: %s", required, component.code, parent.code, exc
            )
            failures.append(
                ComponentFailure(sku_id=component.id, sku_code=component.code, reason=str(exc))
            )
            continue
        except SQLAlchemyError as exc:
            logger.exception(
                "Failed to deduct %d %s for %s", required, component.code, parent.code
            )
            failures.append(
                ComponentFailure(sku_id=component.id, sku_code=component.code, reason=str(exc))
            )
            continue

        deductions.append(
            Deduction(
                sku_id=component.id,
                sku_code=component.code,
                state=bucket,
                quantity=required,
                new_quantity=new_quantity,
            )
        )
        logger.info(
            "Deducted %d %s (%s) for %d %s; now %d",
            required,
            component.code,
            bucket.value,
            quantity_delta,
            parent.code,
            new_quantity,
        )

    db.session.commit()
    return DeductionReport(
        sku_id=sku_id,
        sku_code=parent.code,
        quantity_delta=quantity_delta,
        deductions=tuple(deductions),
        failures=tuple(failures),
    )
