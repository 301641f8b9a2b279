"""
Coupon Models: Coupon, CouponProduct, CouponUsage.
"""

from __future__ import annotations

from datetime import datetime
from decimal import Decimal
from typing import Optional

from sqlalchemy import (
    BigInteger,
    Boolean,
    CheckConstraint,
    DateTime,
    ForeignKey,
    Index,
    Integer,
    Numeric,
    String,
    Text,
    UniqueConstraint,
    func,
)
from sqlalchemy.orm import Mapped, mapped_column, relationship

from shared.config.constants import DiscountType

from .base import Base, BigIntPK, sql_in_list


class Coupon(Base):
    """
    A discount code.

    Coupons are created and edited elsewhere; the cart service reads them and
    checkout increments current_total_uses.
    """

    __tablename__ = "coupon"

    id: Mapped[int] = mapped_column(BigIntPK, primary_key=True)
    code: Mapped[str] = mapped_column(String(64), nullable=False, unique=True)
    description: Mapped[Optional[str]] = mapped_column(Text)
    discount_type: Mapped[str] = mapped_column(String(20), nullable=False)  # fixed | percentage
    discount_value: Mapped[Decimal] = mapped_column(Numeric(12, 2), nullable=False)
    max_discount_amount: Mapped[Optional[Decimal]] = mapped_column(Numeric(12, 2))

    # Activity window
    start_time: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)
    expiry_time: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)

    # Cart requirements
    min_cart_items: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    min_total_price: Mapped[Decimal] = mapped_column(
        Numeric(12, 2), nullable=False, default=Decimal("0")
    )

    # Usage caps (NULL = unlimited)
    max_total_uses: Mapped[Optional[int]] = mapped_column(Integer)
    max_uses_per_user: Mapped[Optional[int]] = mapped_column(Integer)
    current_total_uses: Mapped[int] = mapped_column(Integer, nullable=False, default=0)

    is_auto_applied: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    is_active: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now(), nullable=False
    )

    # Relationships
    products: Mapped[list["CouponProduct"]] = relationship(
        back_populates="coupon", cascade="all, delete-orphan"
    )

    __table_args__ = (
        CheckConstraint("start_time <= expiry_time", name="chk_coupon_window"),
        CheckConstraint("discount_value >= 0", name="chk_coupon_value_non_negative"),
        CheckConstraint(
            f"discount_type IN ({sql_in_list(DiscountType.ALL)})",
            name="chk_coupon_discount_type",
        ),
        CheckConstraint("current_total_uses >= 0", name="chk_coupon_uses_non_negative"),
        Index("ix_coupon_auto_apply", "is_auto_applied", "is_active"),
    )

    @property
    def restricted_product_ids(self) -> set[int]:
        """Products this coupon is limited to. Empty means any product."""
        return {link.product_id for link in self.products}

    def __repr__(self) -> str:
        return f"<Coupon(id={self.id}, code={self.code!r}, type={self.discount_type})>"


class CouponProduct(Base):
    """Restricts a coupon to specific products."""

    __tablename__ = "coupon_product"

    id: Mapped[int] = mapped_column(BigIntPK, primary_key=True)
    coupon_id: Mapped[int] = mapped_column(
        BigInteger, ForeignKey("coupon.id", ondelete="CASCADE"), nullable=False, index=True
    )
    product_id: Mapped[int] = mapped_column(
        BigInteger, ForeignKey("product.id"), nullable=False, index=True
    )

    coupon: Mapped["Coupon"] = relationship(back_populates="products")

    __table_args__ = (
        UniqueConstraint("coupon_id", "product_id", name="uq_coupon_product"),
    )


class CouponUsage(Base):
    """
    Immutable record of a coupon consumed by a checkout.
    Per-user caps are counted from these rows.
    """

    __tablename__ = "coupon_usage"

    id: Mapped[int] = mapped_column(BigIntPK, primary_key=True)
    coupon_id: Mapped[int] = mapped_column(
        BigInteger, ForeignKey("coupon.id"), nullable=False
    )
    user_id: Mapped[int] = mapped_column(BigInteger, nullable=False)
    cart_id: Mapped[int] = mapped_column(
        BigInteger, ForeignKey("cart.id"), nullable=False, index=True
    )
    discount_amount: Mapped[Decimal] = mapped_column(Numeric(14, 4), nullable=False)
    used_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now(), nullable=False
    )

    __table_args__ = (
        Index("ix_coupon_usage_coupon_user", "coupon_id", "user_id"),
    )

    def __repr__(self) -> str:
        return f"<CouponUsage(id={self.id}, coupon_id={self.coupon_id}, user_id={self.user_id})>"
