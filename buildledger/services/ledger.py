from __future__ import annotations

import logging

from sqlalchemy import func

from buildledger.errors import InvalidQuantity
from buildledger.extensions import db
from buildledger.models import InventoryEntry, InventoryState
from buildledger.utils.quantities import MAX_QUANTITY

logger = logging.getLogger(__name__)


def _locked_entry(sku_id: int, state: InventoryState) -> InventoryEntry | None:
    # Row lock on backends that support it; SQLite ignores FOR UPDATE and
    # serializes writers itself.
    return (
        InventoryEntry.query.filter_by(sku_id=sku_id, state=state)
        .with_for_update()
        .first()
    )


def get_quantity(sku_id: int, state: InventoryState) -> int:
    total = (
        db.session.query(func.coalesce(func.sum(InventoryEntry.quantity), 0))
        .filter(InventoryEntry.sku_id == sku_id, InventoryEntry.state == state)
        .scalar()
    )
    return int(total or 0)


def get_quantities(sku_id: int) -> dict[InventoryState, int]:
    quantities = {state: 0 for state in InventoryState}
    rows = (
        db.session.query(InventoryEntry.state, InventoryEntry.quantity)
        .filter(InventoryEntry.sku_id == sku_id)
        .all()
    )
    for state, quantity in rows:
        quantities[state] += int(quantity or 0)
    return quantities


def quantities_by_sku(states=None) -> dict[int, dict[InventoryState, int]]:
    query = db.session.query(
        InventoryEntry.sku_id, InventoryEntry.state, InventoryEntry.quantity
    )
    if states is not None:
        query = query.filter(InventoryEntry.state.in_(list(states)))

    totals: dict[int, dict[InventoryState, int]] = {}
    for sku_id, state, quantity in query.all():
        by_state = totals.setdefault(sku_id, {entry: 0 for entry in InventoryState})
        by_state[state] += int(quantity or 0)
    return totals


def _store(entry: InventoryEntry | None, sku_id: int, state: InventoryState, quantity: int):
    if quantity == 0:
        if entry is not None:
            db.session.delete(entry)
    elif entry is None:
        db.session.add(InventoryEntry(sku_id=sku_id, state=state, quantity=quantity))
    else:
        entry.quantity = quantity
    db.session.flush()


def adjust_quantity(sku_id: int, state: InventoryState, delta: int) -> int:
    """Add ``delta`` to the ``(sku, state)`` counter and return the new total.

    The result may be negative. A total outside the column range raises
    :class:`InvalidQuantity` before anything is written. The caller owns the
    transaction.
    """

    entry = _locked_entry(sku_id, state)
    previous = int(entry.quantity) if entry is not None else 0
    new_quantity = previous + delta
    if abs(new_quantity) > MAX_QUANTITY:
        raise InvalidQuantity(
            new_quantity, f"Quantity would leave the ledger range: {previous} + {delta}"
        )
    if delta:
        _store(entry, sku_id, state, new_quantity)
    return new_quantity


def write_quantity(sku_id: int, state: InventoryState, new_quantity: int) -> int:
    """Overwrite the ``(sku, state)`` counter and return the previous total."""

    entry = _locked_entry(sku_id, state)
    previous = int(entry.quantity) if entry is not None else 0
    if previous != new_quantity:
        _store(entry, sku_id, state, new_quantity)
    return previous
