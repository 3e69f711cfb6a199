from datetime import datetime
from decimal import Decimal
from typing import List, Optional

from sqlalchemy import DECIMAL, DateTime, ForeignKey, Index, Integer, String, Text, func
from sqlalchemy.orm import Mapped, mapped_column, relationship

from src.config.constants import PaymentStatus
from src.database.base import Base


class Order(Base):
    """Order row as seen by the payment core. Only payment fields are written here."""

    __tablename__ = "orders"
    __table_args__ = (
        Index("idx_orders_payment_session", "payment_session_id"),
        Index("idx_orders_payment_success_indicator", "payment_success_indicator"),
    )

    id: Mapped[int] = mapped_column(Integer, primary_key=True, index=True)
    order_number: Mapped[Optional[str]] = mapped_column(String(64), nullable=True)
    total_amount: Mapped[Decimal] = mapped_column(DECIMAL(10, 2), nullable=False)
    currency: Mapped[Optional[str]] = mapped_column(String(3), nullable=True)
    order_status: Mapped[str] = mapped_column(String(50), default="pending", nullable=False)
    payment_status: Mapped[str] = mapped_column(
        String(20), default=PaymentStatus.PENDING.value, nullable=False
    )
    payment_method: Mapped[Optional[str]] = mapped_column(String(50), nullable=True)
    payment_provider: Mapped[Optional[str]] = mapped_column(String(50), nullable=True)
    payment_session_id: Mapped[Optional[str]] = mapped_column(String(255), nullable=True)
    payment_success_indicator: Mapped[Optional[str]] = mapped_column(String(255), nullable=True)
    payment_transaction_id: Mapped[Optional[str]] = mapped_column(String(255), nullable=True)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now(), nullable=False
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now(), onupdate=func.now(), nullable=False
    )

    history: Mapped[List["OrderStatusHistory"]] = relationship(
        "OrderStatusHistory", back_populates="order", cascade="all, delete-orphan"
    )


class OrderStatusHistory(Base):
    """Append-only log of order status changes."""

    __tablename__ = "order_status_history"
    __table_args__ = (Index("idx_order_status_history_order_id", "order_id"),)

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    order_id: Mapped[int] = mapped_column(
        Integer, ForeignKey("orders.id", ondelete="CASCADE"), nullable=False
    )
    status: Mapped[Optional[str]] = mapped_column(String(50), nullable=True)
    note: Mapped[str] = mapped_column(Text, nullable=False)
    # NULL means the change was made by the system
    changed_by: Mapped[Optional[int]] = mapped_column(Integer, nullable=True)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now(), nullable=False
    )

    order: Mapped["Order"] = relationship("Order", back_populates="history")
