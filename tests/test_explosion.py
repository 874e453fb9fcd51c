import os
import sys

import pytest

sys.path.append(os.path.join(os.path.dirname(__file__), ".."))

from buildledger.errors import (  # noqa: E402
    CyclicBomDetected,
    DanglingBomEdge,
    InvalidQuantity,
    UnknownSkuReference,
)
from buildledger.models import SkuKind  # noqa: E402
from buildledger.services.catalog import BomEdge, BomGraph, SkuNode  # noqa: E402
from buildledger.services.explosion import explode, merge_requirements  # noqa: E402


def _graph(nodes, edges, retired_codes=None):
    return BomGraph(
        {
            sku_id: SkuNode(id=sku_id, code=code, name=code.title(), kind=kind)
            for sku_id, (code, kind) in nodes.items()
        },
        {
            parent_id: [BomEdge(component_id=child, quantity=qty) for child, qty in children]
            for parent_id, children in edges.items()
        },
        retired_codes,
    )


@pytest.fixture
def broadhead_graph():
    # 1 BLADE-2IN, 2 FERRULE, 3 STUD-100G, 4 BACKER (raw)
    # 10 2IN-BLADED-FERRULE = 2 x BLADE + 1 x FERRULE
    # 11 2IN-100G-BEAST     = 1 x BLADED-FERRULE + 1 x STUD
    # 20 2PACK              = 2 x BEAST + 1 x BACKER
    return _graph(
        {
            1: ("BLADE-2IN", SkuKind.RAW),
            2: ("FERRULE-2IN", SkuKind.RAW),
            3: ("STUD-100G", SkuKind.RAW),
            4: ("BACKER-CARD", SkuKind.RAW),
            10: ("2IN-BLADED-FERRULE", SkuKind.ASSEMBLY),
            11: ("2IN-100G-BEAST", SkuKind.ASSEMBLY),
            20: ("2PACK-100G-2.0IN", SkuKind.COMPLETED),
        },
        {
            10: [(1, 2), (2, 1)],
            11: [(10, 1), (3, 1)],
            20: [(11, 2), (4, 1)],
        },
    )


def test_raw_sku_explodes_to_itself(broadhead_graph):
    assert explode(broadhead_graph, 1, 7, max_depth=10) == {1: 7}


def test_quantities_multiply_through_every_level():
    graph = _graph(
        {1: ("A", SkuKind.COMPLETED), 2: ("B", SkuKind.ASSEMBLY), 3: ("C", SkuKind.RAW)},
        {1: [(2, 2)], 2: [(3, 3)]},
    )
    assert explode(graph, 1, 5, max_depth=10) == {3: 30}


def test_completed_pack_explodes_through_intermediate_assemblies(broadhead_graph):
    result = explode(broadhead_graph, 20, 5, max_depth=10)
    assert result == {1: 20, 2: 10, 3: 10, 4: 5}


def test_explosion_is_linear(broadhead_graph):
    for sku_id in (1, 10, 11, 20):
        combined = explode(broadhead_graph, sku_id, 3 + 4, max_depth=10)
        split = merge_requirements(
            explode(broadhead_graph, sku_id, 3, max_depth=10),
            explode(broadhead_graph, sku_id, 4, max_depth=10),
        )
        assert combined == split


def test_shared_component_accumulates_across_branches():
    graph = _graph(
        {
            1: ("KIT", SkuKind.COMPLETED),
            2: ("LEFT", SkuKind.ASSEMBLY),
            3: ("RIGHT", SkuKind.ASSEMBLY),
            4: ("SCREW", SkuKind.RAW),
        },
        {1: [(2, 1), (3, 2), (4, 1)], 2: [(4, 4)], 3: [(4, 3)]},
    )
    assert explode(graph, 1, 2, max_depth=10) == {4: 2 * (4 + 6 + 1)}


def test_assembly_without_components_contributes_nothing(broadhead_graph):
    graph = _graph({1: ("KIT-ONLY", SkuKind.COMPLETED)}, {})
    assert explode(graph, 1, 3, max_depth=10) == {}


def test_dangling_component_is_reported():
    graph = _graph({1: ("PARENT", SkuKind.ASSEMBLY)}, {1: [(99, 1)]})
    with pytest.raises(DanglingBomEdge) as excinfo:
        explode(graph, 1, 1, max_depth=10)
    assert str(excinfo.value) == (
        "BOM of PARENT references SKU id 99, which is missing or inactive"
    )


def test_inactive_component_is_named_by_code():
    graph = _graph(
        {1: ("PARENT", SkuKind.ASSEMBLY)}, {1: [(7, 2)]}, retired_codes={7: "OLD-BLADE"}
    )
    with pytest.raises(DanglingBomEdge) as excinfo:
        explode(graph, 1, 1, max_depth=10)
    assert excinfo.value.parent_code == "PARENT"
    assert excinfo.value.to_dict()["component"] == "OLD-BLADE"
    assert isinstance(excinfo.value, UnknownSkuReference)


def test_unknown_root_is_reported(broadhead_graph):
    with pytest.raises(UnknownSkuReference):
        explode(broadhead_graph, 12345, 1, max_depth=10)


def test_cyclic_graph_stops_at_depth_bound():
    graph = _graph(
        {1: ("LOOP-A", SkuKind.ASSEMBLY), 2: ("LOOP-B", SkuKind.ASSEMBLY)},
        {1: [(2, 1)], 2: [(1, 1)]},
    )
    with pytest.raises(CyclicBomDetected) as excinfo:
        explode(graph, 1, 1, max_depth=6)
    assert excinfo.value.path[0] == "LOOP-A"
    assert "LOOP-B" in excinfo.value.path


def test_negative_root_quantity_is_rejected(broadhead_graph):
    with pytest.raises(InvalidQuantity):
        explode(broadhead_graph, 20, -1, max_depth=10)


def test_fractional_root_quantity_is_rejected(broadhead_graph):
    with pytest.raises(InvalidQuantity):
        explode(broadhead_graph, 20, 1.5, max_depth=10)


def test_graph_distinguishes_missing_sku_from_empty_bom(broadhead_graph):
    assert broadhead_graph.get_components(1) == ()
    with pytest.raises(UnknownSkuReference):
        broadhead_graph.get_components(404)
    assert broadhead_graph.exists(404) is False
    assert broadhead_graph.find_by_code(" 2pack-100g-2.0in ").id == 20
