"""
Product data models for Products Service.
"""

from typing import Any, Dict, Iterator, List, Mapping, Optional, Tuple
from dataclasses import dataclass, field
from decimal import Decimal

from pydantic import BaseModel, Field


# Store schema, uppercase as declared by the PRODUCTS table
TABLE = "PRODUCTS"
COLUMN_ID = "ID"
COLUMN_NAME = "NAME"
COLUMN_PRICE = "PRICE"
COLUMN_DESCRIPTION = "DESCRIPTION"

CACHE_KEY_PREFIX = "product:"
CACHE_KEY_PATTERN = f"{CACHE_KEY_PREFIX}*"

# Largest value PRICE NUMERIC(10, 2) can hold
PRICE_MAX = 99999999.99


def cache_key(product_id: int) -> str:
    """Cache key holding the hash for a product."""
    return f"{CACHE_KEY_PREFIX}{product_id}"


def parse_cache_key(key: str) -> Optional[int]:
    """Extract the product id from a cache key, or None if it has none."""
    if not key.startswith(CACHE_KEY_PREFIX):
        return None
    suffix = key[len(CACHE_KEY_PREFIX):]
    try:
        product_id = int(suffix)
    except ValueError:
        return None
    # Only the canonical spelling counts ("product:07" is not product 7's entry)
    return product_id if cache_key(product_id) == key else None


def _normalize(row: Mapping[str, Any]) -> Dict[str, Any]:
    return {str(key).upper(): value for key, value in dict(row).items()}


def row_id(row: Mapping[str, Any]) -> Optional[int]:
    """Product id of a store row, or None if the row carries none."""
    return _normalize(row).get(COLUMN_ID)


def to_numeric(price: float) -> Decimal:
    """Convert a price to the exact decimal sent to the NUMERIC column."""
    return Decimal(str(price))


class Product(BaseModel):
    """A product as held by the record store."""
    id: int = Field(..., description="Store-assigned product ID")
    name: str = Field(..., description="Product name")
    price: float = Field(..., description="Unit price")
    description: str = Field("", description="Product description")

    @classmethod
    def from_row(cls, row: Mapping[str, Any]) -> "Product":
        """Build a product from a store row, matching column names case-insensitively."""
        values = _normalize(row)
        return cls(
            id=values[COLUMN_ID],
            name=values[COLUMN_NAME],
            price=float(values[COLUMN_PRICE]),
            description=values.get(COLUMN_DESCRIPTION) or "",
        )

    def to_cache_mapping(self) -> Dict[str, str]:
        """Hash fields stored under the product's cache key."""
        return {
            "id": str(self.id),
            "name": self.name,
            "price": str(self.price),
            "description": self.description,
        }

    @classmethod
    def from_cache_mapping(cls, mapping: Mapping[str, str]) -> "Product":
        """Parse cached string fields back to typed values."""
        return cls(
            id=int(mapping["id"]),
            name=mapping["name"],
            price=float(mapping["price"]),
            description=mapping.get("description", ""),
        )


class ProductCreateRequest(BaseModel):
    """Request model for creating a product."""
    name: str = Field(..., min_length=1, description="Product name")
    price: float = Field(..., ge=0, le=PRICE_MAX, allow_inf_nan=False, description="Unit price")
    description: str = Field(..., description="Product description")


class ProductUpdateRequest(BaseModel):
    """Request model for a partial product update."""
    name: Optional[str] = Field(None, min_length=1, description="Product name")
    price: Optional[float] = Field(None, ge=0, le=PRICE_MAX, allow_inf_nan=False, description="Unit price")
    description: Optional[str] = Field(None, description="Product description")

    def changed_fields(self) -> Iterator[Tuple[str, Any]]:
        """Yield (column, value) for each supplied field, in column order."""
        for column, value in (
            (COLUMN_NAME, self.name),
            (COLUMN_PRICE, self.price),
            (COLUMN_DESCRIPTION, self.description),
        ):
            if value is not None:
                yield column, value

    def has_changes(self) -> bool:
        return any(True for _ in self.changed_fields())


@dataclass
class CacheLoadReport:
    """Outcome of a cache warm-up."""
    loaded: int = 0
    skipped: int = 0


@dataclass
class SyncReport:
    """Outcome of a cache reconciliation pass."""
    synced: int = 0
    removed: int = 0
    removed_keys: List[str] = field(default_factory=list)


class DeleteResponse(BaseModel):
    """Response model for delete operations."""
    success: bool
    affected: int
    message: str
