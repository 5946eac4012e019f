import re
from decimal import Decimal
from typing import Optional


class FormattingUtils:
    """
    Display formatting for money, names and slugs.

    Money is always handled as integer cents; Decimal is only used at the
    edges (tax computation, dollar amounts in exports).
    """

    CURRENCY_FORMATS = {
        "USD": {"symbol": "$", "decimal_places": 2, "symbol_position": "before"},
        "CAD": {"symbol": "$", "decimal_places": 2, "symbol_position": "before"},
        "EUR": {"symbol": "€", "decimal_places": 2, "symbol_position": "after"},
        "GBP": {"symbol": "£", "decimal_places": 2, "symbol_position": "before"},
    }

    @classmethod
    def format_money(
        cls,
        amount_cents: int,
        currency: str = "USD",
        include_symbol: bool = True,
        include_currency_code: bool = False,
    ) -> str:
        """
        Format money amount for display

        Examples:
            format_money(1299, 'USD') -> "$12.99"
            format_money(1299, 'USD', include_currency_code=True) -> "$12.99 USD"
        """
        currency_config = cls.CURRENCY_FORMATS.get(currency, cls.CURRENCY_FORMATS["USD"])
        decimal_places = currency_config["decimal_places"]
        amount = Decimal(amount_cents) / (10 ** decimal_places)
        formatted_amount = f"{amount:,.{decimal_places}f}"

        result = formatted_amount
        if include_symbol:
            symbol = currency_config["symbol"]
            if currency_config["symbol_position"] == "before":
                result = f"{symbol}{formatted_amount}"
            else:
                result = f"{formatted_amount}{symbol}"

        if include_currency_code:
            result = f"{result} {currency}"
        return result

    @classmethod
    def cents_to_decimal(cls, amount_cents: int) -> Decimal:
        return (Decimal(amount_cents) / 100).quantize(Decimal("0.01"))

    @classmethod
    def format_name(cls, first_name: Optional[str], last_name: Optional[str]) -> str:
        return " ".join(p.strip() for p in (first_name, last_name) if p and p.strip())

    @classmethod
    def slugify(cls, value: str) -> str:
        slug = re.sub(r"[^a-z0-9]+", "-", value.lower()).strip("-")
        return slug or "item"

    @classmethod
    def mask(cls, value: Optional[str], visible: int = 4) -> Optional[str]:
        """Keep the last `visible` characters and star the rest."""
        if not value:
            return value
        if len(value) <= visible:
            return "*" * len(value)
        return "*" * (len(value) - visible) + value[-visible:]
