import logging
import uuid
from typing import Any, Dict, Iterable, List, Optional

from sqlalchemy import func, select
from sqlalchemy.orm import Session

from storefront.core.exceptions import NotFoundError, ValidationError
from storefront.models import HeroBanner
from storefront.utils.date_utils import DateUtils
from storefront.utils.validators import ValidationUtils

logger = logging.getLogger(__name__)

BANNER_FIELDS = (
    "title", "subtitle", "image_url", "cta_text", "cta_link",
    "secondary_cta_text", "secondary_cta_link", "is_active", "position",
    "background_color", "text_color",
)


def banner_to_dict(banner: HeroBanner) -> Dict[str, Any]:
    return {
        "id": str(banner.id),
        "title": banner.title,
        "subtitle": banner.subtitle,
        "image_url": banner.image_url,
        "cta_text": banner.cta_text,
        "cta_link": banner.cta_link,
        "secondary_cta_text": banner.secondary_cta_text,
        "secondary_cta_link": banner.secondary_cta_link,
        "is_active": banner.is_active,
        "position": banner.position,
        "background_color": banner.background_color,
        "text_color": banner.text_color,
        "created_at": DateUtils.to_iso_string(banner.created_at),
        "updated_at": DateUtils.to_iso_string(banner.updated_at),
    }


class HeroBannerService:
    """Home page hero banners, ordered by position."""

    def __init__(self, session: Session):
        self.session = session

    def list_banners(self, active_only: bool = True) -> List[HeroBanner]:
        stmt = select(HeroBanner)
        if active_only:
            stmt = stmt.where(HeroBanner.is_active.is_(True))
        return list(self.session.scalars(stmt.order_by(HeroBanner.position, HeroBanner.created_at)))

    def get_banner(self, banner_id: uuid.UUID) -> HeroBanner:
        banner = self.session.get(HeroBanner, banner_id)
        if banner is None:
            raise NotFoundError("Hero banner", str(banner_id))
        return banner

    def _next_position(self) -> int:
        current = self.session.scalar(select(func.max(HeroBanner.position)))
        return 0 if current is None else current + 1

    @staticmethod
    def _validate(data: Dict[str, Any]) -> None:
        errors = {}
        for key in ("title", "image_url"):
            if key in data and not (data[key] or "").strip():
                errors[key] = [f"{key} is required"]
        for key in ("background_color", "text_color"):
            if data.get(key) and not ValidationUtils.is_hex_color(data[key]):
                errors[key] = [f"{key} must be a hex color like #1a2b3c"]
        if errors:
            raise ValidationError("Invalid hero banner", errors)

    def create_banner(self, data: Dict[str, Any], created_by: Optional[uuid.UUID] = None) -> HeroBanner:
        """New banners go to the end unless a position is given."""
        self._validate({**data, "title": data.get("title"), "image_url": data.get("image_url")})
        values = {k: data[k] for k in BANNER_FIELDS if k in data}
        if values.get("position") is None:
            values["position"] = self._next_position()

        banner = HeroBanner(created_by=created_by, **values)
        self.session.add(banner)
        self.session.flush()
        logger.info(f"created hero banner {banner.id} at position {banner.position}")
        return banner

    def update_banner(self, banner_id: uuid.UUID, data: Dict[str, Any]) -> HeroBanner:
        banner = self.get_banner(banner_id)
        self._validate(data)
        for key in BANNER_FIELDS:
            if key not in data:
                continue
            if key == "position" and data[key] is None:
                continue
            setattr(banner, key, data[key])
        self.session.flush()
        return banner

    def delete_banner(self, banner_id: uuid.UUID) -> None:
        banner = self.get_banner(banner_id)
        self.session.delete(banner)
        self.session.flush()
        logger.info(f"deleted hero banner {banner_id}")

    def reorder(self, ids: Iterable[uuid.UUID]) -> List[HeroBanner]:
        banners = []
        for position, banner_id in enumerate(ids):
            banner = self.get_banner(banner_id)
            banner.position = position
            banners.append(banner)
        self.session.flush()
        return banners
