"""Ledger write path used by inventory views and other callers.

A quantity edit is saved first; component consumption for an increase in
the SKU's natural built bucket runs afterwards and is never rolled back
into the parent edit.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass

from buildledger.errors import BuildLedgerError, InvalidInventoryState, InvalidQuantity
from buildledger.extensions import db
from buildledger.models import InventoryState
from buildledger.services import ledger
from buildledger.services.catalog import BomGraph, get_sku
from buildledger.services.consumption import (
    ConsumptionPartialFailure,
    DeductionReport,
    apply_build_delta,
)
from buildledger.utils.quantities import coerce_quantity

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class QuantityUpdate:
    sku_id: int
    sku_code: str
    state: InventoryState
    previous_quantity: int
    new_quantity: int
    report: DeductionReport | None = None

    @property
    def delta(self) -> int:
        return self.new_quantity - self.previous_quantity

    @property
    def partial_failure(self) -> ConsumptionPartialFailure | None:
        if self.report is None or self.report.ok:
            return None
        return ConsumptionPartialFailure(
            sku_code=self.sku_code,
            state=self.state,
            new_quantity=self.new_quantity,
            failures=self.report.failures,
        )

    @property
    def status(self) -> str:
        return "partial" if self.partial_failure is not None else "ok"

    def message(self) -> str:
        partial = self.partial_failure
        if partial is not None:
            return partial.message
        message = f"Updated {self.sku_code} {self.state.value} to {self.new_quantity}"
        if self.report is not None and self.report.deductions:
            message += f". {self.report.summary()}"
        return message

    def to_dict(self) -> dict:
        partial = self.partial_failure
        return {
            "status": self.status,
            "sku_id": self.sku_id,
            "sku": self.sku_code,
            "state": self.state.value,
            "previous_quantity": self.previous_quantity,
            "new_quantity": self.new_quantity,
            "delta": self.delta,
            "deductions": (
                [deduction.to_dict() for deduction in self.report.deductions]
                if self.report is not None
                else []
            ),
            "partial_failure": partial.to_dict() if partial is not None else None,
            "message": self.message(),
        }


def _parse_state(state) -> InventoryState:
    parsed = InventoryState.parse(state)
    if parsed is None:
        raise InvalidInventoryState(state)
    return parsed


def set_quantity(sku, state, new_quantity, *, graph: BomGraph | None = None) -> QuantityUpdate:
    """Write an absolute quantity for ``(sku, state)``.

    When ``state`` is the SKU's natural built bucket and the quantity went
    up, the immediate components are consumed for the increase.
    """

    new_quantity = coerce_quantity(new_quantity)
    parsed_state = _parse_state(state)
    sku = get_sku(sku)

    previous = ledger.write_quantity(sku.id, parsed_state, new_quantity)
    db.session.commit()
    logger.info(
        "Set %s %s from %d to %d", sku.code, parsed_state.value, previous, new_quantity
    )

    delta = new_quantity - previous
    report = None
    if sku.kind.is_buildable and parsed_state is sku.natural_state and delta > 0:
        report = apply_build_delta(sku.id, delta, graph=graph)

    update = QuantityUpdate(
        sku_id=sku.id,
        sku_code=sku.code,
        state=parsed_state,
        previous_quantity=previous,
        new_quantity=new_quantity,
        report=report,
    )
    if update.partial_failure is not None:
        logger.warning(update.partial_failure.message)
    return update


@dataclass(frozen=True)
class BatchEntryResult:
    index: int
    sku: str
    state: str
    update: QuantityUpdate | None = None
    error: BuildLedgerError | None = None

    @property
    def status(self) -> str:
        if self.error is not None:
            return "error"
        return self.update.status

    def to_dict(self) -> dict:
        payload = {"index": self.index, "sku": self.sku, "state": self.state, "status": self.status}
        if self.error is not None:
            payload["error"] = str(self.error)
            payload["error_type"] = type(self.error).__name__
        else:
            payload.update(self.update.to_dict())
            payload["status"] = self.status
        return payload


@dataclass(frozen=True)
class BatchUpdateReport:
    entries: tuple[BatchEntryResult, ...]

    @property
    def updated(self) -> list[QuantityUpdate]:
        return [entry.update for entry in self.entries if entry.update is not None]

    @property
    def errors(self) -> list[BatchEntryResult]:
        return [entry for entry in self.entries if entry.error is not None]

    @property
    def partial_failures(self) -> list[ConsumptionPartialFailure]:
        return [
            update.partial_failure
            for update in self.updated
            if update.partial_failure is not None
        ]

    @property
    def deductions(self):
        return [
            deduction
            for update in self.updated
            if update.report is not None
            for deduction in update.report.deductions
        ]

    @property
    def status(self) -> str:
        if not self.errors and not self.partial_failures:
            return "ok"
        if not self.updated:
            return "error"
        return "partial"

    def messages(self) -> list[str]:
        lines = [update.message() for update in self.updated]
        lines.extend(f"{entry.sku}: {entry.error}" for entry in self.errors)
        return lines

    def to_dict(self) -> dict:
        return {
            "status": self.status,
            "updated_count": len(self.updated),
            "error_count": len(self.errors),
            "entries": [entry.to_dict() for entry in self.entries],
            "deductions": [deduction.to_dict() for deduction in self.deductions],
            "partial_failures": [failure.to_dict() for failure in self.partial_failures],
            "messages": self.messages(),
        }


def _unpack_entry(entry):
    if isinstance(entry, dict):
        return entry.get("sku"), entry.get("state"), entry.get("quantity")
    try:
        sku, state, quantity = entry
    except (TypeError, ValueError):
        raise InvalidQuantity(entry, f"Malformed batch entry: {entry!r}") from None
    return sku, state, quantity


def apply_batch(entries) -> BatchUpdateReport:
    """Apply ``(sku, state, quantity)`` edits in order.

    A rejected entry does not stop the batch; its error is reported in
    place and later entries still run.
    """

    graph = BomGraph.load()
    results: list[BatchEntryResult] = []
    for index, entry in enumerate(entries):
        sku_label = state_label = ""
        try:
            sku, state, quantity = _unpack_entry(entry)
            sku_label = str(sku or "")
            state_label = str(state or "")
            update = set_quantity(sku, state, quantity, graph=graph)
        except BuildLedgerError as exc:
            db.session.rollback()
            logger.warning("Rejected batch entry %d (%s): %s", index, sku_label, exc)
            results.append(
                BatchEntryResult(index=index, sku=sku_label, state=state_label, error=exc)
            )
            continue

        results.append(
            BatchEntryResult(
                index=index,
                sku=update.sku_code,
                state=update.state.value,
                update=update,
            )
        )

    report = BatchUpdateReport(entries=tuple(results))
    logger.info(
        "Applied inventory batch: %d updated, %d rejected",
        len(report.updated),
        len(report.errors),
    )
    return report
