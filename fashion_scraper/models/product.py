"""
Product Record Model for the fashion product scraper.
This is the single output shape of a scrape, regardless of which
acquisition strategy supplied each field.
"""
from decimal import Decimal, ROUND_HALF_UP
from enum import Enum
from typing import Any, Dict, List, Optional

from pydantic import BaseModel, ConfigDict, Field, field_serializer, field_validator


# ISO-4217 currencies without a minor unit
ZERO_DECIMAL_CURRENCIES = {"JPY", "KRW", "VND", "CLP", "ISK", "HUF", "TWD", "UGX", "PYG"}


class GarmentType(str, Enum):
    """Garment category of the product."""
    UPPER = "upper"
    LOWER = "lower"
    FULL_BODY = "full_body"
    SHOES = "shoes"
    OTHER = "other"  # fashion accessories: bags, hats, jewelry...
    UNSUPPORTED = "unsupported"


class Availability(str, Enum):
    """Stock status of the product."""
    IN_STOCK = "in_stock"
    OUT_OF_STOCK = "out_of_stock"
    LIMITED = "limited"
    UNKNOWN = "unknown"


def quantize_amount(amount: Decimal, currency: str) -> Decimal:
    """Round an amount to the minor unit of its currency."""
    exponent = Decimal("1") if currency in ZERO_DECIMAL_CURRENCIES else Decimal("0.01")
    return amount.quantize(exponent, rounding=ROUND_HALF_UP)


class Price(BaseModel):
    """Price with a mandatory currency - never one without the other."""
    model_config = ConfigDict(frozen=True)

    amount: Decimal = Field(ge=0)
    currency: str = Field(pattern=r"^[A-Z]{3}$")

    @field_validator("currency", mode="before")
    @classmethod
    def _upper_currency(cls, value: Any) -> Any:
        if isinstance(value, str):
            return value.strip().upper()
        return value

    @field_serializer("amount", when_used="json")
    def _amount_as_number(self, amount: Decimal) -> Any:
        if amount == amount.to_integral_value():
            return int(amount)
        return float(amount)


class ProductRecord(BaseModel):
    """
    Structured product data extracted from one product page.

    Optional fields serialize as null, never omitted. The two enum
    fields always hold a value, falling back to their sentinel.
    """
    product_name: Optional[str] = None
    brand: Optional[str] = None
    price: Optional[Price] = None
    image_urls: List[str] = Field(default_factory=list)
    garment_type: GarmentType = GarmentType.UNSUPPORTED
    availability: Availability = Availability.UNKNOWN

    def to_dict(self) -> Dict[str, Any]:
        """Return the JSON-serializable record with nulls kept."""
        return self.model_dump(mode="json")

    def missing_fields(self) -> List[str]:
        """Return the core fields that were not filled."""
        missing = []
        if not self.product_name:
            missing.append("product_name")
        if not self.brand:
            missing.append("brand")
        if self.price is None:
            missing.append("price")
        if not self.image_urls:
            missing.append("image_urls")
        if self.garment_type == GarmentType.UNSUPPORTED:
            missing.append("garment_type")
        return missing
