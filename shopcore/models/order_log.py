from datetime import datetime
from typing import Optional

from sqlmodel import SQLModel, Field
from sqlalchemy import Column, JSON

from shopcore.constants.order_status import ActorType


class OrderLog(SQLModel, table=True):
    """Append-only audit trail, one row per order transition."""

    __tablename__ = "order_logs"

    id: Optional[int] = Field(default=None, primary_key=True)

    order_id: int = Field(foreign_key="orders.id", index=True)
    action: str = Field(index=True)

    performed_by: str = Field(default="system")
    actor_type: str = Field(default=ActorType.system.value)
    meta: Optional[dict] = Field(default=None, sa_column=Column(JSON))

    created_at: datetime = Field(default_factory=datetime.utcnow)
