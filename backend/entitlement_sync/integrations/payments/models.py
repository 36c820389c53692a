"""
Data models for payment provider objects.

Dataclasses mirror the provider's JSON objects. Price and product metadata
are validated with pydantic at this boundary so the reconciliation engine
only ever sees typed values.
"""

from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional

from pydantic import BaseModel, ConfigDict, Field, ValidationError

from entitlement_sync.entitlements.errors import InvalidMetadataError
from entitlement_sync.entitlements.models import ProductType


def _object_id(value: Any) -> Optional[str]:
    """Provider references are either an id string or an expanded object."""
    if value is None:
        return None
    if isinstance(value, dict):
        return value.get("id")
    return str(value)


class PriceMetadata(BaseModel):
    """Metadata attached to a provider price."""

    model_config = ConfigDict(populate_by_name=True, extra="ignore")

    max_space_bytes: int = Field(alias="maxSpaceBytes", ge=0)
    plan_type: str = Field(default="subscription", alias="planType")

    @classmethod
    def parse(cls, metadata: Optional[Dict[str, Any]], price_id: Optional[str] = None) -> "PriceMetadata":
        """
        Validate price metadata.

        Raises:
            InvalidMetadataError: If a required key is missing or malformed
        """
        try:
            return cls.model_validate(metadata or {})
        except ValidationError as e:
            raise InvalidMetadataError(
                "Invalid price metadata",
                price_id=price_id,
                errors=[err["loc"] for err in e.errors()],
            ) from e


class ProductMetadata(BaseModel):
    """Metadata attached to a provider product."""

    model_config = ConfigDict(extra="ignore")

    type: ProductType = ProductType.INDIVIDUAL

    @classmethod
    def parse(cls, metadata: Optional[Dict[str, Any]], product_id: Optional[str] = None) -> "ProductMetadata":
        try:
            return cls.model_validate(metadata or {})
        except ValidationError as e:
            raise InvalidMetadataError(
                "Invalid product metadata",
                product_id=product_id,
                errors=[err["loc"] for err in e.errors()],
            ) from e


@dataclass
class Customer:
    id: str
    email: Optional[str] = None
    name: Optional[str] = None
    deleted: bool = False

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "Customer":
        return cls(
            id=data["id"],
            email=data.get("email"),
            name=data.get("name"),
            deleted=bool(data.get("deleted", False)),
        )


@dataclass
class Product:
    id: str
    name: str = ""
    metadata: Dict[str, Any] = field(default_factory=dict)

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "Product":
        return cls(
            id=data["id"],
            name=data.get("name", ""),
            metadata=data.get("metadata") or {},
        )


@dataclass
class Price:
    id: str
    product_id: str
    type: str = "recurring"
    metadata: Dict[str, Any] = field(default_factory=dict)
    product: Optional[Product] = None

    @property
    def is_recurring(self) -> bool:
        return self.type == "recurring"

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "Price":
        raw_product = data.get("product")
        return cls(
            id=data["id"],
            product_id=_object_id(raw_product),
            type=data.get("type", "recurring"),
            metadata=data.get("metadata") or {},
            product=Product.from_dict(raw_product) if isinstance(raw_product, dict) else None,
        )


@dataclass
class InvoiceLine:
    id: str
    price_id: Optional[str] = None
    price: Optional[Price] = None
    quantity: int = 1
    coupon_ids: List[str] = field(default_factory=list)

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "InvoiceLine":
        raw_price = data.get("price")
        coupon_ids = []
        for discount in data.get("discounts") or []:
            if isinstance(discount, dict):
                coupon_id = _object_id(discount.get("coupon"))
                if coupon_id:
                    coupon_ids.append(coupon_id)
        return cls(
            id=data.get("id", ""),
            price_id=_object_id(raw_price),
            price=Price.from_dict(raw_price) if isinstance(raw_price, dict) else None,
            quantity=int(data.get("quantity") or 1),
            coupon_ids=coupon_ids,
        )


@dataclass
class Invoice:
    id: str
    customer_id: str
    status: str
    customer_email: Optional[str] = None
    lines: List[InvoiceLine] = field(default_factory=list)
    charge_id: Optional[str] = None
    subscription_id: Optional[str] = None
    paid_out_of_band: bool = False
    metadata: Dict[str, Any] = field(default_factory=dict)

    @property
    def is_paid(self) -> bool:
        return self.status == "paid"

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "Invoice":
        raw_lines = data.get("lines") or {}
        if isinstance(raw_lines, dict):
            raw_lines = raw_lines.get("data") or []
        metadata = data.get("metadata") or {}
        return cls(
            id=data["id"],
            customer_id=_object_id(data.get("customer")),
            status=data.get("status", ""),
            customer_email=data.get("customer_email"),
            lines=[InvoiceLine.from_dict(line) for line in raw_lines],
            # out-of-band payments record their charge in metadata
            charge_id=metadata.get("chargeId") or _object_id(data.get("charge")),
            subscription_id=_object_id(data.get("subscription")),
            paid_out_of_band=bool(data.get("paid_out_of_band", False)),
            metadata=metadata,
        )


@dataclass
class Charge:
    id: str
    customer_id: Optional[str] = None
    invoice_id: Optional[str] = None
    refunded: bool = False
    disputed: bool = False
    receipt_email: Optional[str] = None

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "Charge":
        return cls(
            id=data["id"],
            customer_id=_object_id(data.get("customer")),
            invoice_id=_object_id(data.get("invoice")),
            refunded=bool(data.get("refunded", False)),
            disputed=bool(data.get("disputed", False)),
            receipt_email=data.get("receipt_email"),
        )


@dataclass
class Dispute:
    id: str
    charge_id: str
    status: str

    @property
    def is_lost(self) -> bool:
        return self.status == "lost"

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "Dispute":
        return cls(
            id=data["id"],
            charge_id=_object_id(data["charge"]),
            status=data.get("status", ""),
        )


@dataclass
class Subscription:
    id: str
    customer_id: str
    status: str
    price_id: Optional[str] = None
    product_id: Optional[str] = None

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "Subscription":
        price_id = None
        product_id = None
        items = (data.get("items") or {}).get("data") or []
        if items:
            price = items[0].get("price") or {}
            price_id = _object_id(price)
            if isinstance(price, dict):
                product_id = _object_id(price.get("product"))
        return cls(
            id=data["id"],
            customer_id=_object_id(data.get("customer")),
            status=data.get("status", ""),
            price_id=price_id,
            product_id=product_id,
        )
