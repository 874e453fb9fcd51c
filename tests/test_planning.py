import os
import sys
from types import SimpleNamespace

import pytest

sys.path.append(os.path.join(os.path.dirname(__file__), ".."))

from buildledger import create_app  # noqa: E402
from buildledger.extensions import db  # noqa: E402
from buildledger.services import catalog, planning  # noqa: E402
from buildledger.services.stock_updates import set_quantity  # noqa: E402


@pytest.fixture
def app():
    app = create_app({"TESTING": True, "SQLALCHEMY_DATABASE_URI": "sqlite:///:memory:"})
    with app.app_context():
        db.create_all()
        db.session.expire_on_commit = False
        yield app
        db.session.remove()
        db.drop_all()


@pytest.fixture
def skus(app):
    blade = catalog.create_sku("BLADE-2IN", "2in Blade", "RAW")
    ferrule = catalog.create_sku("FERRULE-2IN", "2in Ferrule", "RAW")
    stud = catalog.create_sku("STUD-100G", "100g Stud", "RAW")
    bladed = catalog.create_sku("2IN-BLADED-FERRULE", "Bladed ferrule", "ASSEMBLY")
    beast = catalog.create_sku("2IN-100G-BEAST", "100g Beast", "ASSEMBLY")
    catalog.set_bom(bladed, [(blade, 2), (ferrule, 1)])
    catalog.set_bom(beast, [(bladed, 1), (stud, 1)])
    set_quantity(blade, "RAW", 25)
    set_quantity(ferrule, "RAW", 30)
    set_quantity(stud, "RAW", 4)
    return SimpleNamespace(blade=blade, ferrule=ferrule, stud=stud, bladed=bladed, beast=beast)


def test_total_requirements_against_raw_stock(skus):
    lines = planning.calculate_total_requirements("2IN-100G-BEAST", 10)

    assert [(line.code, line.per_unit, line.total_required, line.shortfall) for line in lines] == [
        ("BLADE-2IN", 2, 20, 0),
        ("FERRULE-2IN", 1, 10, 0),
        ("STUD-100G", 1, 10, 6),
    ]
    assert lines[2].to_dict()["available"] == 4


def test_build_eligibility_uses_immediate_components(skus):
    result = planning.calculate_build_eligibility(skus.bladed)

    assert result.max_buildable == 12
    assert result.bottleneck.code == "BLADE-2IN"
    assert [component.can_supply for component in result.components] == [12, 30]


def test_build_eligibility_with_missing_subassembly_stock(skus):
    result = planning.calculate_build_eligibility(skus.beast)

    assert result.max_buildable == 0
    assert result.bottleneck.code == "2IN-BLADED-FERRULE"
    payload = result.to_dict()
    assert payload["bottleneck"]["shortfall"] == 1


def test_negative_stock_supplies_nothing(skus):
    set_quantity(skus.stud, "RAW", -3)
    set_quantity(skus.bladed, "ASSEMBLED", 5)

    result = planning.calculate_build_eligibility(skus.beast)
    assert result.max_buildable == 0
    assert result.bottleneck.code == "STUD-100G"


def test_all_eligibility_sorted_by_capacity(skus):
    set_quantity(skus.blade, "RAW", 100)
    set_quantity(skus.bladed, "ASSEMBLED", 3)

    results = planning.get_all_build_eligibility()
    assert [(entry.code, entry.max_buildable) for entry in results] == [
        ("2IN-BLADED-FERRULE", 27),
        ("2IN-100G-BEAST", 3),
    ]
