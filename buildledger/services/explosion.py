"""Recursive BOM explosion down to raw materials.

``explode`` is pure: it only reads the :class:`BomGraph` snapshot it is given
and never touches the session.
"""

from __future__ import annotations

from buildledger.errors import CyclicBomDetected, DanglingBomEdge
from buildledger.services.catalog import BomGraph, configured_max_depth
from buildledger.utils.quantities import coerce_quantity


def explode(
    graph: BomGraph,
    root_sku_id: int,
    root_quantity: int,
    *,
    max_depth: int | None = None,
) -> dict[int, int]:
    """Return ``{raw sku id: cumulative quantity}`` for ``root_quantity`` units.

    Quantities multiply exactly at each level. An unknown root raises
    :class:`UnknownSkuReference`, an edge to a missing or inactive component
    raises :class:`DanglingBomEdge`, and a walk deeper than ``max_depth`` raises
    :class:`CyclicBomDetected`.
    """

    quantity = coerce_quantity(root_quantity, minimum=0)
    max_depth = configured_max_depth() if max_depth is None else max_depth
    accumulated: dict[int, int] = {}
    _explode_into(graph, root_sku_id, quantity, accumulated, (root_sku_id,), max_depth)
    return accumulated


def _explode_into(graph, sku_id, quantity, accumulated, path, max_depth) -> None:
    if len(path) - 1 > max_depth:
        raise CyclicBomDetected(_path_codes(graph, path))

    node = graph.node(sku_id)
    if not node.kind.is_buildable:
        accumulated[sku_id] = accumulated.get(sku_id, 0) + quantity
        return

    for edge in graph.get_components(sku_id):
        if not graph.exists(edge.component_id):
            raise DanglingBomEdge(
                node.code, edge.component_id, graph.retired_code(edge.component_id)
            )
        _explode_into(
            graph,
            edge.component_id,
            quantity * edge.quantity,
            accumulated,
            path + (edge.component_id,),
            max_depth,
        )


def _path_codes(graph: BomGraph, path) -> list[str]:
    codes = []
    for sku_id in path:
        codes.append(graph.get_code(sku_id) if graph.exists(sku_id) else str(sku_id))
    return codes


def merge_requirements(*requirement_maps) -> dict[int, int]:
    merged: dict[int, int] = {}
    for requirement_map in requirement_maps:
        for sku_id, quantity in requirement_map.items():
            merged[sku_id] = merged.get(sku_id, 0) + quantity
    return merged
