from datetime import datetime
from typing import Any, Dict, List, Literal, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator

PaymentMethodType = Literal["credit_card", "paypal", "bank_transfer", "square"]
PaymentResultStatus = Literal["completed", "paid", "pending", "failed", "refunded", "cancelled"]

REPORT_PERIODS = ("daily", "weekly", "monthly", "quarterly", "yearly", "custom")


class Address(BaseModel):
    """Shipping or billing address as stored on checkout sessions and orders"""
    model_config = ConfigDict(str_strip_whitespace=True)

    first_name: str = Field(min_length=1)
    last_name: str = Field(min_length=1)
    email: Optional[str] = None
    phone: str = Field(min_length=1)
    address1: str = Field(min_length=1)
    address2: Optional[str] = None
    city: str = Field(min_length=1)
    state: str = Field(min_length=1)
    postal_code: str = Field(min_length=1)
    country: str = Field(min_length=2, max_length=2)

    @field_validator("country")
    @classmethod
    def upper_country(cls, v: str) -> str:
        return v.upper()


class ShippingOption(BaseModel):
    """A selectable shipping method with its price in cents"""
    id: str
    method: str
    name: str
    description: str
    price_cents: int = Field(ge=0)
    estimated_days: str


class PaymentInfo(BaseModel):
    """
    Payment summary kept on the checkout session.

    Card data never reaches this service; payment_method_id is the provider's
    token for the method the browser collected.
    """
    type: PaymentMethodType
    cardholder_name: Optional[str] = None
    payment_method_id: Optional[str] = None
    billing_same_as_shipping: bool = True
    billing_address: Optional[Address] = None

    @model_validator(mode="after")
    def billing_address_required(self) -> "PaymentInfo":
        if not self.billing_same_as_shipping and self.billing_address is None:
            raise ValueError("billing_address is required when billing differs from shipping")
        return self


class PaymentResult(BaseModel):
    """Outcome of a payment as reported by the provider (webhook or confirm call)"""
    success: bool
    status: PaymentResultStatus
    transaction_id: Optional[str] = None
    provider: str = "stripe"
    amount_cents: Optional[int] = None
    order_reference: Optional[str] = None
    error_code: Optional[str] = None
    error_message: Optional[str] = None
    metadata: Dict[str, Any] = Field(default_factory=dict)


class DateRange(BaseModel):
    start: datetime
    end: datetime


class SalesSummary(BaseModel):
    total_orders: int = 0
    total_revenue_cents: int = 0
    average_order_value_cents: int = 0
    total_items_sold: int = 0
    total_shipping_cents: int = 0
    total_tax_cents: int = 0


class StatusCount(BaseModel):
    status: str
    count: int
    percentage: float


class ProductSales(BaseModel):
    product_id: str
    name: str
    sku: Optional[str] = None
    quantity_sold: int = 0
    revenue_cents: int = 0
    average_unit_price_cents: int = 0
    order_count: int = 0


class TimeSeriesPoint(BaseModel):
    period_start: datetime
    label: str
    order_count: int = 0
    revenue_cents: int = 0
    items_sold: int = 0


class OrderReport(BaseModel):
    period: str
    date_range: DateRange
    interval: str
    summary: SalesSummary
    status_distribution: List[StatusCount]
    payment_status_distribution: List[StatusCount]
    top_products: List[ProductSales]
    time_series: List[TimeSeriesPoint]


class PerformanceComparison(BaseModel):
    current: SalesSummary
    previous: SalesSummary
    # Absolute and percentage deltas; percentages are 0 when the previous value was 0
    changes: Dict[str, float]
