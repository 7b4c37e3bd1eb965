import uuid
from datetime import datetime
from sqlalchemy import Boolean, Index, Integer, String, DateTime, func
from sqlalchemy.orm import Mapped, mapped_column
from govcar.database import Base


class Driver(Base):
    __tablename__ = "drivers"
    __table_args__ = (Index("idx_drivers_queue", "active", "status", "queue_order"),)

    id: Mapped[str] = mapped_column(String, primary_key=True, default=lambda: str(uuid.uuid4()))
    full_name: Mapped[str] = mapped_column(String(255), nullable=False)
    phone: Mapped[str | None] = mapped_column(String(20), nullable=True)
    active: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)
    # AVAILABLE | BUSY | OFF
    status: Mapped[str] = mapped_column(String(20), nullable=False, default="AVAILABLE", index=True)
    # lower = earlier; need not be contiguous
    queue_order: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    # LINE user id; absent means chat notifications are skipped
    chat_channel_id: Mapped[str | None] = mapped_column(String(64), unique=True, nullable=True)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), server_default=func.now())
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now(), onupdate=func.now()
    )

    @property
    def is_eligible(self) -> bool:
        return self.active and self.status == "AVAILABLE"
