from __future__ import annotations

from uuid import UUID

from pydantic import BaseModel, ConfigDict, Field

from app.economy.purchases.types import CustomerDetails

PURCHASE_TYPE_ALIASES = {
    "original-order": "original",
    "reset-order": "reset",
    "activation-order": "activation",
}


def normalize_purchase_type(raw: str | None) -> str:
    value = (raw or "original").strip().lower()
    return PURCHASE_TYPE_ALIASES.get(value, value)


class CamelModel(BaseModel):
    model_config = ConfigDict(populate_by_name=True)


class CustomerDataPayload(CamelModel):
    first_name: str = Field(default="", alias="firstName", max_length=128)
    last_name: str = Field(default="", alias="lastName", max_length=128)
    email: str = Field(default="", max_length=255)
    phone: str = Field(default="", max_length=64)
    address: str | None = Field(default=None, max_length=255)
    address_2: str | None = Field(default=None, alias="address2", max_length=255)
    city: str | None = Field(default=None, max_length=128)
    state: str | None = Field(default=None, max_length=128)
    postal_code: str | None = Field(default=None, alias="postalCode", max_length=32)
    country: str | None = Field(default=None, max_length=64)

    def to_customer(self) -> CustomerDetails:
        return CustomerDetails(
            first_name=self.first_name.strip(),
            last_name=self.last_name.strip(),
            email=self.email.strip(),
            phone=self.phone.strip() or None,
            address=self.address,
            address_2=self.address_2,
            city=self.city,
            state=self.state,
            postal_code=self.postal_code,
            country=self.country,
        )


class SelectedAddOnPayload(CamelModel):
    add_on_id: str = Field(alias="addOnId", min_length=1, max_length=64)
    price_increase_percentage: float | None = Field(default=None, alias="priceIncreasePercentage")
    metadata: dict[str, object] = Field(default_factory=dict)


def add_on_selection(items: list[SelectedAddOnPayload]) -> list[tuple[str, dict[str, object]]]:
    # Client-sent percentages are ignored; the add-on table is authoritative.
    return [(item.add_on_id, dict(item.metadata)) for item in items]


class CheckoutRequest(CamelModel):
    amount: float | None = None
    purchase_price: float | None = Field(default=None, alias="purchasePrice")
    total_price: float | None = Field(default=None, alias="totalPrice")
    add_on_value: float | None = Field(default=None, alias="addOnValue")

    currency: str = Field(default="USD", max_length=3)
    program_id: int | None = Field(default=None, alias="programId")
    account_size: str = Field(default="", alias="accountSize", max_length=32)
    tier_id: str | None = Field(default=None, alias="tierId", max_length=64)
    selected_add_ons: list[SelectedAddOnPayload] = Field(default_factory=list, alias="selectedAddOns")
    coupon_code: str | None = Field(default=None, alias="couponCode", max_length=64)
    purchase_type: str | None = Field(default=None, alias="purchaseType", max_length=32)
    reset_product_type: str | None = Field(default=None, alias="resetProductType", max_length=16)
    program_details: str | None = Field(default=None, alias="programDetails", max_length=255)
    platform_id: str | None = Field(default=None, alias="platformId", max_length=32)
    is_in_app_purchase: bool = Field(default=False, alias="isInAppPurchase")
    existing_purchase_id: UUID | None = Field(default=None, alias="existingPurchaseId")
    account_id: str | None = Field(default=None, alias="accountId", max_length=64)
    customer_data: CustomerDataPayload | None = Field(default=None, alias="customerData")

    def client_price_hints(self) -> dict[str, object]:
        hints = {
            "amount": self.amount,
            "purchasePrice": self.purchase_price,
            "totalPrice": self.total_price,
            "addOnValue": self.add_on_value,
        }
        return {key: value for key, value in hints.items() if value is not None}


class CheckoutPurchaseSummary(CamelModel):
    id: UUID
    status: str
    order_number: int = Field(serialization_alias="orderNumber")


class CheckoutResponse(CamelModel):
    success: bool = True
    session_token: str = Field(serialization_alias="sessionToken")
    cashier_key: str | None = Field(default=None, serialization_alias="cashierKey")
    order_id: str = Field(serialization_alias="orderId")
    purchase: CheckoutPurchaseSummary
    prices: dict[str, object]


class UpdatePurchaseRequest(CamelModel):
    purchase_id: UUID | None = Field(default=None, alias="purchaseId")
    selected_add_ons: list[SelectedAddOnPayload] = Field(default_factory=list, alias="selectedAddOns")
    coupon_code: str | None = Field(default=None, alias="couponCode", max_length=64)


class CreateCryptoPaymentRequest(CamelModel):
    purchase_id: UUID | None = Field(default=None, alias="purchaseId")
    currency: str = Field(default="USD", max_length=3)
    program_name: str | None = Field(default=None, alias="programName", max_length=128)
    amount: float | None = None
    customer_data: CustomerDataPayload | None = Field(default=None, alias="customerData")


class BillingDetailsPayload(BaseModel):
    first_name: str = Field(default="", max_length=128)
    last_name: str = Field(default="", max_length=128)
    address_1: str | None = Field(default=None, max_length=255)
    address_2: str | None = Field(default=None, max_length=255)
    city: str | None = Field(default=None, max_length=128)
    state: str | None = Field(default=None, max_length=128)
    postcode: str | None = Field(default=None, max_length=32)
    country: str | None = Field(default=None, max_length=64)
    email: str = Field(default="", max_length=255)
    phone: str | None = Field(default=None, max_length=64)

    def to_customer(self) -> CustomerDetails:
        return CustomerDetails(
            first_name=self.first_name.strip(),
            last_name=self.last_name.strip(),
            email=self.email.strip().lower(),
            phone=self.phone,
            address=self.address_1,
            address_2=self.address_2,
            city=self.city,
            state=self.state,
            postal_code=self.postcode,
            country=self.country,
        )


class CreatePendingOrderRequest(BaseModel):
    billing_details: BillingDetailsPayload | None = None
    product_id: int | str | None = None
    account_id: str | None = Field(default=None, max_length=64)
