"""Identity collaborator.

Credentials are issued and checked upstream; the gateway in front of this
service forwards the authenticated principal as headers. This module only
reads them, and resolves contact details for notifications.
"""

from dataclasses import dataclass
from typing import Optional, Protocol

from fastapi import Header, HTTPException, status
from sqlmodel import Session

from shopcore.models.user import User


@dataclass(frozen=True)
class CurrentUser:
    id: str
    email: Optional[str] = None
    role: str = "user"


@dataclass(frozen=True)
class Contact:
    email: str
    first_name: Optional[str] = None


def get_current_user(
    x_user_id: Optional[str] = Header(default=None),
    x_user_email: Optional[str] = Header(default=None),
    x_user_role: Optional[str] = Header(default=None),
) -> CurrentUser:
    if not x_user_id:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Could not validate credentials",
        )

    return CurrentUser(id=x_user_id, email=x_user_email, role=x_user_role or "user")


class UserDirectory(Protocol):
    def get_contact(self, session: Session, user_id: str) -> Optional[Contact]:
        ...


class SqlUserDirectory:
    """Reads contacts from the identity service's replicated users table."""

    def get_contact(self, session: Session, user_id: str) -> Optional[Contact]:
        user = session.get(User, user_id)
        if not user:
            return None
        return Contact(email=user.email, first_name=user.first_name or user.last_name)
