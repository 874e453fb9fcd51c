"""SKU catalog and bill-of-materials graph.

Catalog edits go through the ORM; read paths that walk the BOM use a
:class:`BomGraph` snapshot so a recursive walk does not issue one query per
node.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass

from flask import current_app
from sqlalchemy import func, or_

from buildledger.errors import (
    CatalogError,
    CyclicBomDetected,
    InvalidQuantity,
    UnknownSkuReference,
)
from buildledger.extensions import db
from buildledger.models import BomComponent, Sku, SkuKind, normalize_code
from buildledger.utils.quantities import coerce_quantity

logger = logging.getLogger(__name__)

DEFAULT_MAX_DEPTH = 32


def configured_max_depth() -> int:
    try:
        return int(current_app.config.get("BOM_MAX_DEPTH", DEFAULT_MAX_DEPTH))
    except (RuntimeError, TypeError, ValueError):
        return DEFAULT_MAX_DEPTH


@dataclass(frozen=True)
class SkuNode:
    id: int
    code: str
    name: str
    kind: SkuKind


@dataclass(frozen=True)
class BomEdge:
    component_id: int
    quantity: int


class BomGraph:
    """Read-only snapshot of active SKUs and their BOM edges."""

    def __init__(self, nodes, edges, retired_codes=None):
        self._nodes: dict[int, SkuNode] = dict(nodes)
        self._edges: dict[int, tuple[BomEdge, ...]] = {
            parent_id: tuple(parent_edges) for parent_id, parent_edges in edges.items()
        }
        self._by_code = {node.code: node for node in self._nodes.values()}
        self._retired_codes: dict[int, str] = dict(retired_codes or {})

    @classmethod
    def load(cls, session=None) -> "BomGraph":
        session = session or db.session
        nodes = {
            sku_id: SkuNode(id=sku_id, code=code, name=name, kind=kind)
            for sku_id, code, name, kind in session.query(
                Sku.id, Sku.code, Sku.name, Sku.kind
            ).filter(Sku.is_active.is_(True))
        }
        retired_codes = dict(
            session.query(Sku.id, Sku.code).filter(Sku.is_active.is_(False)).all()
        )

        edges: dict[int, list[BomEdge]] = {}
        rows = (
            session.query(
                BomComponent.parent_sku_id,
                BomComponent.component_sku_id,
                BomComponent.quantity,
            )
            .order_by(BomComponent.id)
            .all()
        )
        for parent_id, component_id, quantity in rows:
            if parent_id not in nodes:
                continue
            edges.setdefault(parent_id, []).append(
                BomEdge(component_id=component_id, quantity=int(quantity))
            )
        return cls(nodes, edges, retired_codes)

    def exists(self, sku_id: int) -> bool:
        return sku_id in self._nodes

    def node(self, sku_id: int) -> SkuNode:
        try:
            return self._nodes[sku_id]
        except KeyError:
            raise UnknownSkuReference(sku_id) from None

    def get_kind(self, sku_id: int) -> SkuKind:
        return self.node(sku_id).kind

    def get_code(self, sku_id: int) -> str:
        return self.node(sku_id).code

    def get_components(self, sku_id: int) -> tuple[BomEdge, ...]:
        """Immediate components in declaration order.

        An unknown or inactive parent raises rather than returning an empty
        tuple, so "no components" and "bad reference" stay distinguishable.
        """

        self.node(sku_id)
        return self._edges.get(sku_id, ())

    def retired_code(self, sku_id: int) -> str | None:
        """Code of a deactivated SKU, for error messages about stale edges."""
        return self._retired_codes.get(sku_id)

    def find_by_code(self, code) -> SkuNode:
        normalized = normalize_code(code)
        try:
            return self._by_code[normalized]
        except KeyError:
            raise UnknownSkuReference(normalized) from None

    def nodes(self):
        return list(self._nodes.values())

    def parents_of(self, sku_id: int) -> list[tuple[int, int]]:
        return [
            (parent_id, edge.quantity)
            for parent_id, parent_edges in self._edges.items()
            for edge in parent_edges
            if edge.component_id == sku_id
        ]


############################
# LOOKUPS
############################
def get_sku(reference, *, include_inactive: bool = False) -> Sku:
    """Resolve a SKU by primary key or code."""

    if isinstance(reference, Sku):
        sku = reference
    elif isinstance(reference, int) and not isinstance(reference, bool):
        sku = db.session.get(Sku, reference)
    else:
        code = normalize_code(reference)
        if not code:
            raise UnknownSkuReference(reference, "SKU is required")
        sku = Sku.query.filter_by(code=code).first()
        reference = code

    if sku is None or (not include_inactive and not sku.is_active):
        raise UnknownSkuReference(reference)
    return sku


def list_skus(*, kind=None, search: str | None = None, include_inactive: bool = False):
    query = Sku.query
    if not include_inactive:
        query = query.filter(Sku.is_active.is_(True))
    if kind is not None:
        parsed_kind = SkuKind.parse(kind)
        if parsed_kind is None:
            raise CatalogError(f"Unknown SKU kind: {kind}")
        query = query.filter(Sku.kind == parsed_kind)
    search = (search or "").strip().lower()
    if search:
        pattern = f"%{search}%"
        query = query.filter(
            or_(func.lower(Sku.code).like(pattern), func.lower(Sku.name).like(pattern))
        )
    return query.order_by(Sku.kind, Sku.code).all()


############################
# CATALOG ADMINISTRATION
############################
def create_sku(code, name, kind, *, category=None, process=None) -> Sku:
    normalized = normalize_code(code)
    if not normalized:
        raise CatalogError("SKU code is required.")
    name = (name or "").strip()
    if not name:
        raise CatalogError("SKU name is required.")
    parsed_kind = SkuKind.parse(kind)
    if parsed_kind is None:
        raise CatalogError(f"Unknown SKU kind: {kind}")
    if Sku.query.filter_by(code=normalized).first() is not None:
        raise CatalogError(f"SKU {normalized} already exists.")

    sku = Sku(
        code=normalized,
        name=name,
        kind=parsed_kind,
        category=(category or "").strip() or None,
        process=(process or "").strip() or None,
        is_active=True,
    )
    db.session.add(sku)
    db.session.commit()
    logger.info("Created SKU %s (%s)", sku.code, sku.kind.value)
    return sku


def update_sku(sku, *, name=None, kind=None, category=None, process=None) -> Sku:
    sku = get_sku(sku, include_inactive=True)
    if kind is not None and SkuKind.parse(kind) is not sku.kind:
        raise CatalogError(f"The kind of {sku.code} cannot be changed.")
    if name is not None:
        name = name.strip()
        if not name:
            raise CatalogError("SKU name is required.")
        sku.name = name
    if category is not None:
        sku.category = category.strip() or None
    if process is not None:
        sku.process = process.strip() or None
    db.session.commit()
    return sku


def deactivate_sku(sku) -> Sku:
    sku = get_sku(sku, include_inactive=True)
    if sku.is_active:
        sku.is_active = False
        db.session.commit()
        logger.info("Deactivated SKU %s", sku.code)
    return sku


def _edge_map(exclude_parent_id: int | None = None) -> dict[int, list[int]]:
    edges: dict[int, list[int]] = {}
    rows = db.session.query(
        BomComponent.parent_sku_id, BomComponent.component_sku_id
    ).order_by(BomComponent.id)
    for parent_id, component_id in rows:
        if parent_id == exclude_parent_id:
            continue
        edges.setdefault(parent_id, []).append(component_id)
    return edges


def _find_path(edges: dict[int, list[int]], start: int, target: int) -> list[int] | None:
    stack = [(start, [start])]
    seen = set()
    while stack:
        node, path = stack.pop()
        if node == target:
            return path
        if node in seen:
            continue
        seen.add(node)
        for child in edges.get(node, ()):
            stack.append((child, path + [child]))
    return None


def set_bom(parent, components) -> Sku:
    """Replace the BOM of ``parent``.

    ``components`` is an iterable of ``(sku reference, quantity per unit)``
    pairs. A component listed twice keeps the last quantity.
    """

    parent = get_sku(parent)
    if not parent.kind.is_buildable:
        raise CatalogError(f"{parent.code} is a raw material and cannot have components.")

    resolved: dict[int, int] = {}
    for reference, quantity in components:
        quantity = coerce_quantity(quantity)
        if quantity <= 0:
            raise InvalidQuantity(quantity, "Component quantities must be greater than zero.")
        component = get_sku(reference)
        if component.id == parent.id:
            raise CatalogError(f"{parent.code} cannot be a component of itself.")
        resolved.pop(component.id, None)
        resolved[component.id] = quantity

    edges = _edge_map(exclude_parent_id=parent.id)
    for component_id in resolved:
        path = _find_path(edges, component_id, parent.id)
        if path is not None:
            codes = dict(db.session.query(Sku.id, Sku.code).filter(Sku.id.in_(path)))
            raise CyclicBomDetected(
                [parent.code] + [codes.get(step, step) for step in path]
            )

    existing = {line.component_sku_id: line for line in parent.components}
    for component_id, line in list(existing.items()):
        if component_id not in resolved:
            parent.components.remove(line)
    # Flush removals first so re-added pairs do not trip the unique constraint.
    db.session.flush()

    for component_id, quantity in resolved.items():
        line = existing.get(component_id)
        if line is not None:
            line.quantity = quantity
        else:
            parent.components.append(
                BomComponent(component_sku_id=component_id, quantity=quantity)
            )

    db.session.commit()
    logger.info(
        "Saved BOM for %s with %d component(s)", parent.code, len(resolved)
    )
    return parent


def clear_bom(parent) -> Sku:
    parent = get_sku(parent, include_inactive=True)
    parent.components.clear()
    db.session.commit()
    logger.info("Cleared BOM for %s", parent.code)
    return parent


############################
# REPORTS
############################
@dataclass(frozen=True)
class UsedInProduct:
    sku_id: int
    code: str
    name: str
    kind: SkuKind
    quantity: int
    depth: int

    def to_dict(self) -> dict:
        return {
            "sku_id": self.sku_id,
            "code": self.code,
            "name": self.name,
            "kind": self.kind.value,
            "quantity": self.quantity,
            "depth": self.depth,
        }


def get_used_in(sku, *, graph: BomGraph | None = None, max_depth: int | None = None):
    """Every product that consumes ``sku``, directly (depth 0) or through
    intermediate assemblies."""

    sku = get_sku(sku)
    graph = graph or BomGraph.load()
    max_depth = configured_max_depth() if max_depth is None else max_depth

    results: list[UsedInProduct] = []
    visited: set[int] = set()

    def _traverse(current_id: int, depth: int) -> None:
        if current_id in visited or depth > max_depth:
            return
        visited.add(current_id)
        for parent_id, quantity in graph.parents_of(current_id):
            node = graph.node(parent_id)
            results.append(
                UsedInProduct(
                    sku_id=node.id,
                    code=node.code,
                    name=node.name,
                    kind=node.kind,
                    quantity=quantity,
                    depth=depth,
                )
            )
            _traverse(parent_id, depth + 1)

    _traverse(sku.id, 0)
    results.sort(key=lambda entry: (entry.depth, entry.code))
    return results


def validate_catalog() -> list[str]:
    """Return human-readable integrity problems in the stored BOM graph."""

    issues: list[str] = []
    skus = {sku.id: sku for sku in Sku.query.all()}
    edges = _edge_map()

    for parent_id, component_ids in sorted(edges.items()):
        parent = skus.get(parent_id)
        if parent is None:
            continue
        if parent.kind is SkuKind.RAW:
            issues.append(f"{parent.code} is a raw material but has BOM components.")
        if not parent.is_active:
            continue
        for component_id in component_ids:
            component = skus.get(component_id)
            if component is None:
                issues.append(f"{parent.code} references missing SKU id {component_id}.")
            elif not component.is_active:
                issues.append(f"{parent.code} references inactive SKU {component.code}.")

    reported: set[frozenset[int]] = set()
    for parent_id, component_ids in sorted(edges.items()):
        for component_id in component_ids:
            path = _find_path(edges, component_id, parent_id)
            if path is None:
                continue
            cycle_key = frozenset(path)
            if cycle_key in reported:
                continue
            reported.add(cycle_key)
            codes = [
                skus[step].code if step in skus else str(step)
                for step in [parent_id] + path
            ]
            issues.append("Cycle detected: " + " -> ".join(codes))

    return issues
