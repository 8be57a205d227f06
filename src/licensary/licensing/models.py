"""SQLAlchemy model for licenses."""

from datetime import datetime

from sqlalchemy import DateTime, Integer, String, Text
from sqlalchemy.orm import Mapped, mapped_column

from licensary.common.models import Base, utcnow


class LicenseModel(Base):
    """A time-bounded grant bound to a (user_id, product_id) pair.

    Timestamps are written by the licensing service and the sync engine,
    never by ORM defaults on update, because a pull restores them verbatim
    from the mirror.
    """

    __tablename__ = "licenses"

    key: Mapped[str] = mapped_column(String(64), primary_key=True)
    status: Mapped[str] = mapped_column(String(20), nullable=False, default="inactive", index=True)
    valid_until: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)
    issued_to: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    version: Mapped[str] = mapped_column(String(64), nullable=False, default="")
    permissions: Mapped[str] = mapped_column(Text, nullable=False, default="")

    user_id: Mapped[str] = mapped_column(String(255), nullable=False, default="", index=True)
    product_id: Mapped[str] = mapped_column(String(255), nullable=False, default="", index=True)

    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, default=utcnow
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, default=utcnow
    )
    last_activated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, default=utcnow
    )
