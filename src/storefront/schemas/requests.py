from marshmallow import (
    EXCLUDE,
    Schema,
    ValidationError,
    fields,
    validate,
    validates_schema,
)

from storefront.models.checkout import CHECKOUT_STEPS
from storefront.models.order import ORDER_STATUSES, PAYMENT_STATUSES
from storefront.schemas.values import REPORT_PERIODS
from storefront.utils.date_utils import DateUtils
from storefront.utils.validators import ValidationUtils


class FlexibleDateTime(fields.Field):
    """Accepts anything dateutil can parse and loads an aware UTC datetime."""

    def _deserialize(self, value, attr, data, **kwargs):
        try:
            return DateUtils.parse(value)
        except ValueError as e:
            raise ValidationError("Not a valid date.") from e


class BaseSchema(Schema):
    class Meta:
        unknown = EXCLUDE


# --------------------------------------------------------------------------- #
# Cart                                                                         #
# --------------------------------------------------------------------------- #

class AddCartItemSchema(BaseSchema):
    product_id = fields.UUID(required=True)
    variant_id = fields.UUID(load_default=None, allow_none=True)
    quantity = fields.Int(load_default=1, strict=True, validate=validate.Range(min=1, max=99))


class UpdateCartItemSchema(BaseSchema):
    quantity = fields.Int(required=True, strict=True, validate=validate.Range(min=0, max=99))


# --------------------------------------------------------------------------- #
# Checkout                                                                     #
# --------------------------------------------------------------------------- #

class AddressSchema(BaseSchema):
    first_name = fields.Str(required=True, validate=validate.Length(min=1, max=100))
    last_name = fields.Str(required=True, validate=validate.Length(min=1, max=100))
    email = fields.Email(load_default=None, allow_none=True)
    phone = fields.Str(required=True, validate=validate.Length(min=7, max=30))
    address1 = fields.Str(required=True, validate=validate.Length(min=1, max=200))
    address2 = fields.Str(load_default=None, allow_none=True)
    city = fields.Str(required=True, validate=validate.Length(min=1, max=100))
    state = fields.Str(required=True, validate=validate.Length(min=1, max=100))
    postal_code = fields.Str(required=True, validate=validate.Length(min=3, max=20))
    country = fields.Str(load_default="US", validate=validate.Length(equal=2))


class ShippingInformationSchema(BaseSchema):
    email = fields.Email(load_default=None, allow_none=True)
    shipping_address = fields.Nested(AddressSchema, required=True)


class ShippingMethodSchema(BaseSchema):
    method = fields.Str(required=True, validate=validate.OneOf(["standard", "express", "overnight"]))


class PaymentInfoSchema(BaseSchema):
    type = fields.Str(
        required=True,
        validate=validate.OneOf(["credit_card", "paypal", "bank_transfer", "square"]),
    )
    cardholder_name = fields.Str(load_default=None, allow_none=True)
    payment_method_id = fields.Str(load_default=None, allow_none=True)
    billing_same_as_shipping = fields.Bool(load_default=True)
    billing_address = fields.Nested(AddressSchema, load_default=None, allow_none=True)

    @validates_schema
    def check_billing(self, data, **kwargs):
        if not data.get("billing_same_as_shipping") and not data.get("billing_address"):
            raise ValidationError("Billing address is required.", "billing_address")
        if data.get("type") == "credit_card" and not data.get("cardholder_name"):
            raise ValidationError("Cardholder name is required.", "cardholder_name")


class CheckoutStepSchema(BaseSchema):
    step = fields.Str(required=True, validate=validate.OneOf(CHECKOUT_STEPS))


# --------------------------------------------------------------------------- #
# Orders                                                                       #
# --------------------------------------------------------------------------- #

def _order_number_format(value):
    # Lookups are case-insensitive
    if not ValidationUtils.validate_order_number(value.strip().upper()):
        raise ValidationError("Order numbers look like NO-YYYYMMDD-XXXX.")


class GuestOrderLookupSchema(BaseSchema):
    email = fields.Email(required=True)
    order_number = fields.Str(required=True, validate=_order_number_format)


class OrderStatusUpdateSchema(BaseSchema):
    status = fields.Str(required=True, validate=validate.OneOf(ORDER_STATUSES))
    notes = fields.Str(load_default=None, allow_none=True)


class PaymentStatusUpdateSchema(BaseSchema):
    payment_status = fields.Str(required=True, validate=validate.OneOf(PAYMENT_STATUSES))
    notes = fields.Str(load_default=None, allow_none=True)


class CancelOrderSchema(BaseSchema):
    reason = fields.Str(load_default=None, allow_none=True, validate=validate.Length(max=500))
    # Guests prove ownership with the email the order was placed with
    email = fields.Email(load_default=None, allow_none=True)


class OrderListQuerySchema(BaseSchema):
    status = fields.Str(load_default=None, validate=validate.OneOf(ORDER_STATUSES))
    payment_status = fields.Str(load_default=None, validate=validate.OneOf(PAYMENT_STATUSES))
    email = fields.Str(load_default=None)
    q = fields.Str(load_default=None)
    date_from = FlexibleDateTime(load_default=None)
    date_to = FlexibleDateTime(load_default=None)
    min_total_cents = fields.Int(load_default=None, validate=validate.Range(min=0))
    max_total_cents = fields.Int(load_default=None, validate=validate.Range(min=0))
    sort = fields.Str(
        load_default="newest",
        validate=validate.OneOf(["newest", "oldest", "total_desc", "total_asc"]),
    )
    page = fields.Int(load_default=1, validate=validate.Range(min=1))
    page_size = fields.Int(load_default=20, validate=validate.Range(min=1, max=100))


class OrderExportQuerySchema(OrderListQuerySchema):
    format = fields.Str(load_default="csv", validate=validate.OneOf(["csv", "json"]))
    include_items = fields.Bool(load_default=True)
    include_addresses = fields.Bool(load_default=True)
    include_payment_info = fields.Bool(load_default=False)
    include_status_history = fields.Bool(load_default=False)
    page_size = fields.Int(load_default=1000, validate=validate.Range(min=1, max=10000))


class AnalyticsQuerySchema(BaseSchema):
    period = fields.Str(
        load_default="monthly",
        validate=validate.OneOf(REPORT_PERIODS),
    )
    start = FlexibleDateTime(load_default=None)
    end = FlexibleDateTime(load_default=None)
    compare = fields.Bool(load_default=False)
    top_products = fields.Int(load_default=10, validate=validate.Range(min=1, max=100))

    @validates_schema
    def check_custom_range(self, data, **kwargs):
        if data.get("period") == "custom" and not (data.get("start") and data.get("end")):
            raise ValidationError("start and end are required for a custom period.", "period")


# --------------------------------------------------------------------------- #
# Catalog / admin                                                              #
# --------------------------------------------------------------------------- #

class ProductListQuerySchema(BaseSchema):
    category = fields.Str(load_default=None)
    q = fields.Str(load_default=None)
    min_price_cents = fields.Int(load_default=None, validate=validate.Range(min=0))
    max_price_cents = fields.Int(load_default=None, validate=validate.Range(min=0))
    in_stock = fields.Bool(load_default=False)
    featured = fields.Bool(load_default=False)
    include_inactive = fields.Bool(load_default=False)
    sort = fields.Str(
        load_default="newest",
        validate=validate.OneOf(["newest", "price_asc", "price_desc", "name"]),
    )
    page = fields.Int(load_default=1, validate=validate.Range(min=1))
    page_size = fields.Int(load_default=20, validate=validate.Range(min=1, max=100))


class ProductSchema(BaseSchema):
    name = fields.Str(required=True, validate=validate.Length(min=1, max=255))
    sku = fields.Str(required=True, validate=validate.Length(min=1, max=64))
    slug = fields.Str(load_default=None, allow_none=True)
    description = fields.Str(load_default=None, allow_none=True)
    retail_price_cents = fields.Int(required=True, strict=True, validate=validate.Range(min=0))
    business_price_cents = fields.Int(
        load_default=None, allow_none=True, strict=True, validate=validate.Range(min=0)
    )
    stock = fields.Int(load_default=0, strict=True, validate=validate.Range(min=0))
    is_active = fields.Bool(load_default=True)
    is_featured = fields.Bool(load_default=False)
    image_url = fields.Str(load_default=None, allow_none=True)
    category_ids = fields.List(fields.UUID(), load_default=None)


class VariantSchema(BaseSchema):
    sku = fields.Str(required=True, validate=validate.Length(min=1, max=64))
    name = fields.Str(load_default=None, allow_none=True)
    options = fields.Dict(keys=fields.Str(), load_default=dict)
    retail_price_cents = fields.Int(
        load_default=None, allow_none=True, strict=True, validate=validate.Range(min=0)
    )
    stock = fields.Int(load_default=0, strict=True, validate=validate.Range(min=0))
    is_active = fields.Bool(load_default=True)


class CategorySchema(BaseSchema):
    name = fields.Str(required=True, validate=validate.Length(min=1, max=255))
    slug = fields.Str(load_default=None, allow_none=True)
    description = fields.Str(load_default=None, allow_none=True)
    parent_id = fields.UUID(load_default=None, allow_none=True)
    sort_order = fields.Int(load_default=0)
    is_visible = fields.Bool(load_default=True)
    is_highlighted = fields.Bool(load_default=False)
    highlight_priority = fields.Int(load_default=0)


class HeroBannerSchema(BaseSchema):
    title = fields.Str(required=True, validate=validate.Length(min=1, max=255))
    subtitle = fields.Str(load_default=None, allow_none=True)
    image_url = fields.Str(required=True, validate=validate.Length(min=1))
    cta_text = fields.Str(load_default=None, allow_none=True)
    cta_link = fields.Str(load_default=None, allow_none=True)
    secondary_cta_text = fields.Str(load_default=None, allow_none=True)
    secondary_cta_link = fields.Str(load_default=None, allow_none=True)
    is_active = fields.Bool(load_default=True)
    position = fields.Int(load_default=None, allow_none=True)
    background_color = fields.Str(load_default=None, allow_none=True)
    text_color = fields.Str(load_default=None, allow_none=True)


class ReorderSchema(BaseSchema):
    ids = fields.List(fields.UUID(), required=True, validate=validate.Length(min=1))
