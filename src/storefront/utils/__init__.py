from storefront.utils.date_utils import DateUtils
from storefront.utils.formatting import FormattingUtils
from storefront.utils.validators import ValidationUtils

__all__ = ["DateUtils", "FormattingUtils", "ValidationUtils"]
