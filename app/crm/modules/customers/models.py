from __future__ import annotations

from datetime import datetime

from sqlalchemy import Boolean, DateTime, ForeignKey, Index, Integer, String, Text, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column, relationship

from app.crm.models import Base
from app.crm.utils import utcnow


class Customer(Base):
    __tablename__ = "customers"
    __table_args__ = (
        Index("idx_customers_is_tracking_updated_at", "is_tracking", "updated_at"),
        Index("idx_customers_staff_in_charge_id", "staff_in_charge_id"),
        Index("idx_customers_customer_type", "customer_type"),
        Index("idx_customers_stage", "stage"),
    )

    id: Mapped[int] = mapped_column(Integer, primary_key=True)

    name: Mapped[str] = mapped_column(Text, nullable=False)
    phone: Mapped[str | None] = mapped_column(Text, nullable=True)
    email: Mapped[str | None] = mapped_column(Text, nullable=True)
    address: Mapped[str | None] = mapped_column(Text, nullable=True)
    company_name: Mapped[str | None] = mapped_column(Text, nullable=True)

    customer_type: Mapped[str] = mapped_column(String(32), nullable=False)
    business_type: Mapped[str | None] = mapped_column(Text, nullable=True)
    scale: Mapped[str | None] = mapped_column(Text, nullable=True)
    province_city: Mapped[str | None] = mapped_column(Text, nullable=True)
    customer_source: Mapped[str | None] = mapped_column(Text, nullable=True)

    staff_in_charge_id: Mapped[int | None] = mapped_column(ForeignKey("users.id", ondelete="SET NULL"), nullable=True)

    # pipeline
    stage: Mapped[str] = mapped_column(String(32), nullable=False, default="care")
    level: Mapped[str] = mapped_column(String(16), nullable=False, default="cold")
    contact_status: Mapped[str] = mapped_column(String(32), nullable=False, default="not_called")

    customer_feedback: Mapped[str | None] = mapped_column(Text, nullable=True)
    notes: Mapped[str | None] = mapped_column(Text, nullable=True)
    appointment_date: Mapped[datetime | None] = mapped_column(DateTime(timezone=False), nullable=True)
    appointment_reminder: Mapped[str | None] = mapped_column(Text, nullable=True)

    is_tracking: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)

    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=False), nullable=False, default=utcnow)
    updated_at: Mapped[datetime] = mapped_column(DateTime(timezone=False), nullable=False, default=utcnow)

    # List queries join the staff name themselves; this is only touched on single-row responses.
    staff_in_charge = relationship("User", foreign_keys=[staff_in_charge_id], lazy="select")
    product_links: Mapped[list["CustomerProduct"]] = relationship(
        "CustomerProduct",
        back_populates="customer",
        cascade="all, delete-orphan",
        order_by="CustomerProduct.id",
        lazy="selectin",
    )

    @property
    def products(self) -> list[str]:
        return [p.product for p in self.product_links]

    def set_products(self, products: list[str]) -> None:
        wanted = list(products)
        keep = [p for p in self.product_links if p.product in wanted]
        have = {p.product for p in keep}
        self.product_links = keep + [CustomerProduct(product=p) for p in wanted if p not in have]


class CustomerProduct(Base):
    """One catalog product held by a customer (the customers.products set)."""

    __tablename__ = "customer_products"
    __table_args__ = (
        UniqueConstraint("customer_id", "product", name="uq_customer_products_customer_product"),
        Index("idx_customer_products_product", "product"),
    )

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    customer_id: Mapped[int] = mapped_column(ForeignKey("customers.id", ondelete="CASCADE"), nullable=False)
    product: Mapped[str] = mapped_column(String(128), nullable=False)

    customer: Mapped[Customer] = relationship("Customer", back_populates="product_links")
