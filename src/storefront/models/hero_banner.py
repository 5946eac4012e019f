from sqlalchemy import Boolean, Column, DateTime, Integer, Text, Uuid

from storefront.db import Base
from storefront.models.common import new_id, utcnow


class HeroBanner(Base):
    """Home page hero slide. Shown in ascending position order when active."""

    __tablename__ = "hero_banners"

    id = Column(Uuid, primary_key=True, default=new_id)
    title = Column(Text, nullable=False)
    subtitle = Column(Text, nullable=True)
    image_url = Column(Text, nullable=False)
    cta_text = Column(Text, nullable=True)
    cta_link = Column(Text, nullable=True)
    secondary_cta_text = Column(Text, nullable=True)
    secondary_cta_link = Column(Text, nullable=True)
    is_active = Column(Boolean, nullable=False, default=True)
    position = Column(Integer, nullable=False, default=0)
    background_color = Column(Text, nullable=True)
    text_color = Column(Text, nullable=True)
    created_by = Column(Uuid, nullable=True)
    created_at = Column(DateTime(timezone=True), nullable=False, default=utcnow)
    updated_at = Column(DateTime(timezone=True), nullable=False, default=utcnow, onupdate=utcnow)

    def __repr__(self) -> str:
        return f"<HeroBanner id={self.id} title={self.title!r} position={self.position}>"
