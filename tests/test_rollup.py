import os
import sys
from types import SimpleNamespace

import pytest

sys.path.append(os.path.join(os.path.dirname(__file__), ".."))

from buildledger import create_app  # noqa: E402
from buildledger.errors import CyclicBomDetected  # noqa: E402
from buildledger.extensions import db  # noqa: E402
from buildledger.models import BomComponent, InventoryState  # noqa: E402
from buildledger.services import catalog, ledger, rollup  # noqa: E402
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
    blade = catalog.create_sku("BLADE-2IN", "2in Blade", "RAW", category="Blades")
    ferrule = catalog.create_sku("FERRULE-2IN", "2in Ferrule", "RAW")
    stud = catalog.create_sku("STUD-100G", "100g Stud", "RAW")
    bladed = catalog.create_sku("2IN-BLADED-FERRULE", "Bladed ferrule", "ASSEMBLY")
    beast = catalog.create_sku("2IN-100G-BEAST", "100g Beast", "ASSEMBLY")
    pack = catalog.create_sku("2PACK-100G-2.0IN", "Two pack", "COMPLETED")
    catalog.set_bom(bladed, [(blade, 2), (ferrule, 1)])
    catalog.set_bom(beast, [(stud, 1), (bladed, 1)])
    catalog.set_bom(pack, [(beast, 2)])
    return SimpleNamespace(
        blade=blade, ferrule=ferrule, stud=stud, bladed=bladed, beast=beast, pack=pack
    )


def _codes(locked, skus):
    by_id = {sku.id: sku.code for sku in vars(skus).values()}
    return {by_id[sku_id]: quantity for sku_id, quantity in locked.items()}


def test_nothing_built_means_nothing_locked(skus):
    set_quantity(skus.blade, "RAW", 500)
    assert rollup.in_assembly() == {}


def test_completed_packs_explode_to_raw(skus):
    ledger.write_quantity(skus.pack.id, InventoryState.COMPLETED, 5)
    db.session.commit()

    locked = _codes(rollup.in_assembly(), skus)
    assert locked == {"STUD-100G": 10, "BLADE-2IN": 20, "FERRULE-2IN": 10}


def test_every_built_level_is_counted(skus):
    ledger.write_quantity(skus.pack.id, InventoryState.COMPLETED, 1)
    ledger.write_quantity(skus.beast.id, InventoryState.ASSEMBLED, 3)
    ledger.write_quantity(skus.bladed.id, InventoryState.ASSEMBLED, 4)
    # stock outside the natural bucket is not built stock
    ledger.write_quantity(skus.bladed.id, InventoryState.RECEIVED, 100)
    db.session.commit()

    locked = _codes(rollup.in_assembly(), skus)
    assert locked == {
        "STUD-100G": 2 + 3,
        "BLADE-2IN": 2 * (2 + 3 + 4),
        "FERRULE-2IN": 2 + 3 + 4,
    }


def test_negative_built_stock_is_ignored(skus):
    ledger.write_quantity(skus.beast.id, InventoryState.ASSEMBLED, -6)
    ledger.write_quantity(skus.bladed.id, InventoryState.ASSEMBLED, 2)
    db.session.commit()

    locked = _codes(rollup.in_assembly(), skus)
    assert locked == {"BLADE-2IN": 4, "FERRULE-2IN": 2}


def test_stored_cycle_is_reported(skus):
    db.session.add(
        BomComponent(parent_sku_id=skus.bladed.id, component_sku_id=skus.pack.id, quantity=1)
    )
    ledger.write_quantity(skus.pack.id, InventoryState.COMPLETED, 1)
    db.session.commit()

    with pytest.raises(CyclicBomDetected):
        rollup.in_assembly(max_depth=8)


def test_inventory_summary(skus):
    set_quantity(skus.blade, "RAW", 100)
    set_quantity(skus.blade, "RECEIVED", 40)
    set_quantity(skus.stud, "RAW", 1)
    set_quantity(skus.bladed, "ASSEMBLED", 10)
    set_quantity(skus.beast, "ASSEMBLED", 3)

    rows = {row.code: row for row in rollup.get_inventory_summary()}

    blade = rows["BLADE-2IN"]
    assert blade.received == 40
    assert blade.available == 80
    assert blade.total == 120
    assert blade.in_assembly == 2 * (7 + 3)
    assert blade.category == "Blades"
    assert not blade.backlog

    stud = rows["STUD-100G"]
    assert stud.available == -2
    assert stud.backlog
    assert stud.to_dict()["backlog"] is True

    bladed = rows["2IN-BLADED-FERRULE"]
    assert bladed.available == 7
    assert bladed.in_assembly == 0


def test_inventory_summary_filters(skus):
    codes = [row.code for row in rollup.get_inventory_summary(kind="ASSEMBLY")]
    assert codes == ["2IN-100G-BEAST", "2IN-BLADED-FERRULE"]
    codes = [row.code for row in rollup.get_inventory_summary(search="ferrule")]
    # ordered by kind, then code
    assert codes == ["2IN-BLADED-FERRULE", "FERRULE-2IN"]
