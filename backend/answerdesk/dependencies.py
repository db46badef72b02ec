"""
FastAPI dependencies for caller identity and settings.

Authentication proper is handled upstream; this service trusts the
X-User-Id header and only checks that the user exists.
"""

from typing import Optional

from fastapi import Depends, Header, Request
from sqlalchemy.orm import Session

from answerdesk.config import Settings
from answerdesk.database import get_db
from answerdesk.errors import ForbiddenError, UnauthorizedError
from answerdesk.models.user import User


def get_settings(request: Request) -> Settings:
    return request.app.state.settings


def get_current_user(
    x_user_id: Optional[str] = Header(None, alias="X-User-Id"),
    db: Session = Depends(get_db),
) -> User:
    if not x_user_id:
        raise UnauthorizedError("Missing X-User-Id header")
    user = db.get(User, x_user_id)
    if user is None:
        raise UnauthorizedError("Unknown user")
    return user


def require_admin(user: User = Depends(get_current_user)) -> User:
    if not user.is_admin:
        raise ForbiddenError("Admin access required")
    return user


def page_limit(settings: Settings, limit: Optional[int]) -> int:
    """Clamp a requested page size to the configured bounds."""
    if not limit:
        return settings.default_page_size
    return max(1, min(limit, settings.max_page_size))
