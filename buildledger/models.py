import enum
from datetime import datetime

from buildledger.extensions import db


class InventoryState(str, enum.Enum):
    """Stock buckets a SKU's on-hand quantity is split across."""

    RECEIVED = "RECEIVED"
    RAW = "RAW"
    ASSEMBLED = "ASSEMBLED"
    COMPLETED = "COMPLETED"

    @classmethod
    def parse(cls, value):
        if isinstance(value, cls):
            return value
        try:
            return cls(str(value or "").strip().upper())
        except ValueError:
            return None


class SkuKind(str, enum.Enum):
    RAW = "RAW"
    ASSEMBLY = "ASSEMBLY"
    COMPLETED = "COMPLETED"

    @property
    def natural_state(self) -> InventoryState:
        return _NATURAL_STATES[self]

    @property
    def is_buildable(self) -> bool:
        return self is not SkuKind.RAW

    @classmethod
    def parse(cls, value):
        if isinstance(value, cls):
            return value
        try:
            return cls(str(value or "").strip().upper())
        except ValueError:
            return None


_NATURAL_STATES = {
    SkuKind.RAW: InventoryState.RAW,
    SkuKind.ASSEMBLY: InventoryState.ASSEMBLED,
    SkuKind.COMPLETED: InventoryState.COMPLETED,
}


def normalize_code(code) -> str:
    return str(code or "").strip().upper()


class Sku(db.Model):
    __tablename__ = "sku"

    __table_args__ = (db.UniqueConstraint("code", name="uq_sku_code"),)

    id = db.Column(db.Integer, primary_key=True)
    code = db.Column(db.String(64), nullable=False)
    name = db.Column(db.String(255), nullable=False)
    kind = db.Column(
        db.Enum(SkuKind, name="sku_kind", native_enum=False, length=16),
        nullable=False,
    )
    category = db.Column(db.String(120), nullable=True)
    process = db.Column(db.String(120), nullable=True)
    is_active = db.Column(db.Boolean, nullable=False, default=True)
    created_at = db.Column(db.DateTime, nullable=False, default=datetime.utcnow)
    updated_at = db.Column(
        db.DateTime, nullable=False, default=datetime.utcnow, onupdate=datetime.utcnow
    )

    components = db.relationship(
        "BomComponent",
        foreign_keys="BomComponent.parent_sku_id",
        back_populates="parent",
        cascade="all, delete-orphan",
        order_by="BomComponent.id",
    )
    inventory_entries = db.relationship(
        "InventoryEntry",
        back_populates="sku",
        cascade="all, delete-orphan",
        order_by="InventoryEntry.id",
    )

    @property
    def natural_state(self) -> InventoryState:
        return self.kind.natural_state

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "code": self.code,
            "name": self.name,
            "kind": self.kind.value,
            "category": self.category or "",
            "process": self.process or "",
            "is_active": bool(self.is_active),
        }

    def __repr__(self):
        return f"<Sku {self.code} kind={self.kind.value} active={self.is_active}>"


class BomComponent(db.Model):
    __tablename__ = "bom_component"

    __table_args__ = (
        db.UniqueConstraint(
            "parent_sku_id", "component_sku_id", name="uq_bom_component_pair"
        ),
        db.CheckConstraint("quantity > 0", name="ck_bom_component_quantity_positive"),
        db.CheckConstraint(
            "parent_sku_id <> component_sku_id", name="ck_bom_component_not_self"
        ),
    )

    id = db.Column(db.Integer, primary_key=True)
    parent_sku_id = db.Column(db.Integer, db.ForeignKey("sku.id"), nullable=False)
    component_sku_id = db.Column(
        db.Integer, db.ForeignKey("sku.id"), nullable=False, index=True
    )
    quantity = db.Column(db.Integer, nullable=False)

    parent = db.relationship(
        "Sku", foreign_keys=[parent_sku_id], back_populates="components"
    )
    component = db.relationship("Sku", foreign_keys=[component_sku_id])

    def __repr__(self):
        return (
            f"<BomComponent parent={self.parent_sku_id} "
            f"component={self.component_sku_id} qty={self.quantity}>"
        )


class InventoryEntry(db.Model):
    """Signed on-hand counter for one ``(sku, state)`` bucket.

    Negative quantities are valid: they record material consumed before the
    matching receipt or production was entered. A zero quantity is never
    stored; the row is deleted instead.
    """

    __tablename__ = "inventory_entry"

    __table_args__ = (
        db.UniqueConstraint("sku_id", "state", name="uq_inventory_entry_sku_state"),
    )

    id = db.Column(db.Integer, primary_key=True)
    sku_id = db.Column(db.Integer, db.ForeignKey("sku.id"), nullable=False)
    state = db.Column(
        db.Enum(InventoryState, name="inventory_state", native_enum=False, length=16),
        nullable=False,
    )
    quantity = db.Column(db.Integer, nullable=False, default=0)
    updated_at = db.Column(
        db.DateTime, nullable=False, default=datetime.utcnow, onupdate=datetime.utcnow
    )

    sku = db.relationship("Sku", back_populates="inventory_entries")

    def __repr__(self):
        return (
            f"<InventoryEntry sku={self.sku_id} state={self.state.value} "
            f"qty={self.quantity}>"
        )
