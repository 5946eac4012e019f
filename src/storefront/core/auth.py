import logging
import uuid
from dataclasses import dataclass
from functools import wraps
from typing import Any, Dict, Optional

from flask import current_app, g, request
from jose import JWTError, jwt

from storefront.core.exceptions import ForbiddenError, UnauthorizedError
from storefront.db import get_session
from storefront.models import Profile

logger = logging.getLogger(__name__)

SERVICE_ROLE = "service_role"


@dataclass
class CurrentUser:
    """The authenticated caller. role is one of admin, staff, customer."""
    id: uuid.UUID
    email: Optional[str]
    role: str = "customer"


def decode_access_token(token: str, secret: str, audience: str = "authenticated",
                        algorithm: str = "HS256") -> Dict[str, Any]:
    """
    Verify a Supabase access token and return its claims.

    Service-role tokens carry no audience, so audience verification is only
    enforced when the claim is present.
    """
    try:
        unverified = jwt.get_unverified_claims(token)
        options = {"verify_aud": "aud" in unverified}
        return jwt.decode(token, secret, algorithms=[algorithm], audience=audience, options=options)
    except JWTError as e:
        logger.info(f"rejected access token: {e}")
        raise UnauthorizedError("Invalid or expired access token")


def _bearer_token() -> Optional[str]:
    header = request.headers.get("Authorization", "")
    scheme, _, token = header.partition(" ")
    if scheme.lower() != "bearer" or not token.strip():
        return None
    return token.strip()


def resolve_current_user() -> Optional[CurrentUser]:
    """
    Resolve the caller from the Authorization header, caching it on flask.g.

    No header means a guest (None). A header that fails verification is a 401,
    never a silent downgrade to guest.
    """
    if "current_user" in g:
        return g.current_user

    token = _bearer_token()
    if token is None:
        g.current_user = None
        return None

    config = current_app.config["STOREFRONT"]
    claims = decode_access_token(
        token,
        config.supabase.jwt_secret,
        audience=config.supabase.jwt_audience,
        algorithm=config.supabase.jwt_algorithm,
    )

    if claims.get("role") == SERVICE_ROLE:
        user = CurrentUser(id=uuid.UUID(int=0), email=None, role="admin")
        g.current_user = user
        return user

    try:
        user_id = uuid.UUID(str(claims.get("sub")))
    except ValueError:
        raise UnauthorizedError("Access token has no valid subject")

    role = "customer"
    email = claims.get("email")
    with get_session() as session:
        profile = session.get(Profile, user_id)
        if profile is not None:
            role = profile.role
            email = email or profile.email

    user = CurrentUser(id=user_id, email=email, role=role)
    g.current_user = user
    return user


def require_auth(view):
    """Reject guests with 401."""
    @wraps(view)
    def wrapper(*args, **kwargs):
        if resolve_current_user() is None:
            raise UnauthorizedError()
        return view(*args, **kwargs)
    return wrapper


def require_role(*roles: str):
    """Reject callers whose profile role is not one of `roles`."""
    def decorator(view):
        @wraps(view)
        def wrapper(*args, **kwargs):
            user = resolve_current_user()
            if user is None:
                raise UnauthorizedError()
            if user.role not in roles:
                raise ForbiddenError(f"Requires role: {', '.join(roles)}")
            return view(*args, **kwargs)
        return wrapper
    return decorator


require_admin = require_role("admin")
require_staff = require_role("admin", "staff")
