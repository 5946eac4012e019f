from dataclasses import asdict, dataclass
from typing import Any, Dict, Optional

from jinja2 import Environment, PackageLoader, select_autoescape

from storefront.core.config import AppConfig
from storefront.utils.date_utils import DateUtils
from storefront.utils.formatting import FormattingUtils


@dataclass
class InvoiceOptions:
    include_company_logo: bool = True
    include_tax_id: bool = True
    include_billing_address: bool = True
    include_shipping_address: bool = True
    include_payment_info: bool = True
    include_order_notes: bool = True
    include_footer: bool = True


def _money(cents: Optional[int], currency: Optional[str] = None) -> str:
    return FormattingUtils.format_money(cents or 0, currency or "USD")


def _display_date(value: Optional[str], timezone_name: str = "UTC") -> str:
    if not value:
        return ""
    return DateUtils.format_for_display(DateUtils.parse(value), timezone_name)


_env = Environment(
    loader=PackageLoader("storefront", "templates"),
    autoescape=select_autoescape(["html"]),
    trim_blocks=True,
    lstrip_blocks=True,
)
_env.filters["money"] = _money
_env.filters["display_date"] = _display_date


def generate_invoice_html(
    order: Dict[str, Any],
    company: AppConfig,
    options: Optional[InvoiceOptions] = None,
    timezone_name: str = "UTC",
) -> str:
    """
    Render a printable HTML invoice for an order dict.

    Dates are shown in `timezone_name`. Customer-supplied text (names, notes)
    is escaped. The bill-to block falls back to the shipping address when
    billing matched shipping.
    """
    template = _env.get_template("invoice.html")
    return template.render(
        order=order,
        options=asdict(options or InvoiceOptions()),
        timezone=timezone_name,
        company={
            "name": company.company_name,
            "email": company.company_email,
            "address": company.company_address,
            "tax_id": company.company_tax_id,
            "logo_url": company.company_logo_url,
        },
    )
