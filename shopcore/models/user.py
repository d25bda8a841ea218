from sqlmodel import SQLModel, Field
from typing import Optional
from datetime import datetime


class User(SQLModel, table=True):
    """Read model of the identity service's users."""

    __tablename__ = "users"

    id: str = Field(primary_key=True)
    first_name: str
    last_name: Optional[str] = None
    email: str
    created_at: datetime = Field(default_factory=datetime.utcnow)
