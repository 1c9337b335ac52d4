"""
Pydantic projection of product rows.

Rows from ``products`` and ``vendor_product`` have different column sets;
``ProductEntity.from_row`` maps either shape onto one typed model for the
decisions the services make (ownership, pricing, media cleanup).
"""

from datetime import datetime
from typing import Any

from pydantic import BaseModel, Field

from src.services.field_normalizer import is_strict_int, parse_discount_percent, parse_number, parse_payment_methods


class OwnerReference(BaseModel):
    """A strict numeric vendor id, a text vendor id, an opaque vendor handle, or any mix of them."""

    numeric_id: int | None = None
    text_id: str | None = None
    handle: str | None = None

    def matches(self, actor_id: str) -> bool:
        forms = set()
        if self.numeric_id is not None:
            forms.add(str(self.numeric_id))
        if self.text_id:
            forms.add(self.text_id)
        if self.handle:
            forms.add(self.handle)
        return str(actor_id) in forms


class ProductEntity(BaseModel):
    id: str | None = None
    relation: str | None = None
    name: str | None = None
    price: float = 0.0
    original_price: float | None = None
    sale_percent: float | None = None
    stock: int = 0
    owner: OwnerReference = Field(default_factory=OwnerReference)
    payment_methods: set[str] = Field(default_factory=set)
    image: str | None = None
    thumbnails: list[str] = Field(default_factory=list)
    created_at: datetime | None = None

    @classmethod
    def from_row(cls, row: dict[str, Any], relation: str | None = None) -> "ProductEntity":
        vendor_id = row.get("vendor_id")
        handle = row.get("vendor")
        owner = OwnerReference()
        if vendor_id is not None and is_strict_int(vendor_id):
            owner.numeric_id = int(str(vendor_id).strip())
        elif vendor_id not in (None, ""):
            # vendor_product stores vendor_id as text
            owner.text_id = str(vendor_id)
        if handle not in (None, ""):
            owner.handle = str(handle)

        thumbnails = row.get("thumbnails")
        if isinstance(thumbnails, str):
            thumbnails = [thumbnails] if thumbnails else []

        created_at = row.get("created_at")
        if not isinstance(created_at, datetime):
            created_at = None

        stock = parse_number(row.get("stock"))
        return cls(
            id=str(row["id"]) if row.get("id") is not None else None,
            relation=relation,
            name=row.get("name"),
            price=parse_number(row.get("price")) or 0.0,
            original_price=parse_number(row.get("original_price")),
            sale_percent=parse_discount_percent(row.get("sale_percent")),
            stock=int(stock) if stock is not None and stock > 0 else 0,
            owner=owner,
            payment_methods=parse_payment_methods(row.get("payment_methods")),
            image=row.get("image"),
            thumbnails=[str(t) for t in thumbnails or [] if t],
            created_at=created_at,
        )

    def media_urls(self) -> list[str]:
        return [url for url in [self.image, *self.thumbnails] if url]
