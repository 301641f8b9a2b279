"""
Catalog Models: Product.

The catalog is owned by another service. This side only reads price,
availability and stock, and decrements stock at checkout.
"""

from __future__ import annotations

from decimal import Decimal

from sqlalchemy import Boolean, CheckConstraint, Integer, Numeric, Text
from sqlalchemy.orm import Mapped, mapped_column

from .base import Base, BigIntPK, TimestampMixin


class Product(TimestampMixin, Base):
    """
    A sellable product with its current unit price and stock level.
    """

    __tablename__ = "product"

    id: Mapped[int] = mapped_column(BigIntPK, primary_key=True)
    name: Mapped[str] = mapped_column(Text, nullable=False)
    price: Mapped[Decimal] = mapped_column(Numeric(12, 2), nullable=False)
    stock_quantity: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    is_active: Mapped[bool] = mapped_column(Boolean, default=True, nullable=False)

    __table_args__ = (
        CheckConstraint("stock_quantity >= 0", name="chk_product_stock_non_negative"),
        CheckConstraint("price >= 0", name="chk_product_price_non_negative"),
    )

    def __repr__(self) -> str:
        return f"<Product(id={self.id}, name={self.name!r}, stock={self.stock_quantity})>"
