"""
Catalog product schemas used by stock reconciliation.
"""

from pydantic import Field
from typing import Optional
from enum import Enum

from models.base import BaseSchema, FrozenSchema


class StockStatus(str, Enum):
    """Stock availability classification shown on the storefront."""
    NONE = "NONE"
    ENOUGH = "ENOUGH"
    MANY = "MANY"

    @classmethod
    def from_quantity(cls, quantity: int) -> "StockStatus":
        """
        Classify a stock quantity.

        0 → NONE, 1-10 → ENOUGH, above 10 → MANY.
        """
        if quantity <= 0:
            return cls.NONE
        if quantity <= 10:
            return cls.ENOUGH
        return cls.MANY


class CatalogRecord(FrozenSchema):
    """
    Canonical product as read from storage.

    Snapshot for the duration of one reconciliation job.
    """

    id: str = Field(..., description="Product ID")
    title: str = Field(..., description="Product title")
    sku: Optional[str] = Field(None, description="Product SKU")
    stock: int = Field(default=0, description="Stock before the sync")


class StockUpdate(BaseSchema):
    """
    One stock write for a catalog product.

    Derived deterministically from the matched row quantity.
    """

    catalog_id: str = Field(..., description="Product ID")
    new_stock: int = Field(..., ge=0, description="Stock quantity to store")
    in_stock: bool = Field(..., description="True when new_stock > 0")
    stock_status: StockStatus = Field(..., description="Availability classification")

    @classmethod
    def for_quantity(cls, catalog_id: str, quantity: int) -> "StockUpdate":
        """Build the update for a parsed quantity."""
        quantity = max(0, int(quantity))
        return cls(
            catalog_id=catalog_id,
            new_stock=quantity,
            in_stock=quantity > 0,
            stock_status=StockStatus.from_quantity(quantity),
        )

    def to_row(self) -> dict:
        """Convert to the storage payload."""
        return {
            "id": self.catalog_id,
            "stock": self.new_stock,
            "is_in_stock": self.in_stock,
            "stock_status": self.stock_status.value,
        }
