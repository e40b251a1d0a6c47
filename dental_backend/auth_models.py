from __future__ import annotations

import uuid
from datetime import datetime

from sqlalchemy import JSON, Boolean, DateTime, ForeignKey, String, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column

from dental_backend.db import Base


def new_uuid() -> str:
    return str(uuid.uuid4())


class User(Base):
    """
    Staff member of exactly one clinic.
    - username unique across clinics (login has no clinic field)
    - password_hash with bcrypt (passlib)
    - role drives section access and capabilities
    - allowed_sections / limits: optional per-user restrictions (None = none)
    """
    __tablename__ = "users"
    __table_args__ = (UniqueConstraint("username", name="uq_users_username"),)

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=new_uuid)
    clinic_id: Mapped[str] = mapped_column(ForeignKey("clinics.id"), nullable=False, index=True)
    username: Mapped[str] = mapped_column(String(50), nullable=False)
    password_hash: Mapped[str] = mapped_column(String(255), nullable=False)
    full_name: Mapped[str | None] = mapped_column(String(160), nullable=True)
    role: Mapped[str] = mapped_column(String(30), nullable=False, default="receptionist")

    allowed_sections: Mapped[list | None] = mapped_column(JSON, nullable=True)
    limits: Mapped[dict | None] = mapped_column(JSON, nullable=True)

    is_active: Mapped[bool] = mapped_column(Boolean, default=True, nullable=False)
    created_at: Mapped[datetime] = mapped_column(DateTime, default=datetime.utcnow, nullable=False)

    def __repr__(self) -> str:
        return f"User({self.username}, {self.role})"
