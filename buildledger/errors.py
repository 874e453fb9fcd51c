"""Domain exceptions raised by the catalog, ledger and BOM engines.

Partial consumption failures are *not* exceptions; see
:class:`buildledger.services.consumption.ConsumptionPartialFailure`.
"""

from __future__ import annotations


class BuildLedgerError(Exception):
    """Base class for errors surfaced to callers of the engine."""

    status_code = 400

    def to_dict(self) -> dict[str, object]:
        return {"error": str(self), "type": type(self).__name__}


class UnknownSkuReference(BuildLedgerError):
    """A SKU id or code does not exist or is inactive."""

    status_code = 404

    def __init__(self, reference, message: str | None = None):
        self.reference = reference
        super().__init__(message or f"Unknown or inactive SKU: {reference}")


class InvalidQuantity(BuildLedgerError):
    """A quantity is not a finite integer, or is out of range for the operation."""

    def __init__(self, value, message: str | None = None):
        self.value = value
        super().__init__(message or f"Invalid quantity: {value!r}")


class InvalidInventoryState(BuildLedgerError):
    def __init__(self, value):
        self.value = value
        super().__init__(f"Unknown inventory state: {value!r}")


class CyclicBomDetected(BuildLedgerError):
    status_code = 409

    def __init__(self, path, message: str | None = None):
        self.path = tuple(path)
        if message is None:
            message = "Cyclic bill of materials detected: " + " -> ".join(
                str(step) for step in self.path
            )
        super().__init__(message)

    def to_dict(self) -> dict[str, object]:
        payload = super().to_dict()
        payload["path"] = list(self.path)
        return payload


class CatalogError(BuildLedgerError):
    """Catalog administration rejected an edit (duplicate code, kind change, ...)."""


class DanglingBomEdge(UnknownSkuReference):
    """A stored BOM edge points at a component that is missing or inactive."""

    status_code = 409

    def __init__(self, parent_code: str, component_id: int, component_code: str | None = None):
        self.parent_code = parent_code
        self.component_id = component_id
        self.component_code = component_code
        label = component_code or f"SKU id {component_id}"
        super().__init__(
            component_id,
            f"BOM of {parent_code} references {label}, which is missing or inactive",
        )

    def to_dict(self) -> dict[str, object]:
        payload = super().to_dict()
        payload["parent"] = self.parent_code
        payload["component"] = self.component_code or self.component_id
        return payload
