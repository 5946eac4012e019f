from sqlalchemy import CheckConstraint, Column, DateTime, Text, Uuid

from storefront.db import Base
from storefront.models.common import one_of, utcnow

ROLES = ("admin", "staff", "customer")


class Profile(Base):
    """
    Public profile row for an authenticated user.

    The id is the auth user's id (the `sub` claim of their access token), so
    there is no separate users table on this side. role drives every
    authorization decision; a user without a profile row is a customer.
    """

    __tablename__ = "profiles"

    id = Column(Uuid, primary_key=True)
    email = Column(Text, nullable=True)
    full_name = Column(Text, nullable=True)
    role = Column(Text, nullable=False, default="customer")
    created_at = Column(DateTime(timezone=True), nullable=False, default=utcnow)

    __table_args__ = (
        CheckConstraint(one_of("role", ROLES), name="ck_profile_role"),
    )

    def __repr__(self) -> str:
        return f"<Profile id={self.id} role={self.role!r}>"
