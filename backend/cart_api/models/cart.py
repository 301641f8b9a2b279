"""
Cart Models: Cart, CartItem, CartCoupon.
"""

from __future__ import annotations

from datetime import datetime
from decimal import Decimal
from typing import TYPE_CHECKING, Optional

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
    UniqueConstraint,
    func,
    text,
)
from sqlalchemy.orm import Mapped, mapped_column, relationship

from shared.config.constants import CartStatus

from .base import Base, BigIntPK, TimestampMixin, sql_in_list

if TYPE_CHECKING:
    from .catalog import Product
    from .coupon import Coupon


class Cart(TimestampMixin, Base):
    """
    A user's shopping cart.

    A user has at most one cart in status 'active'; checked out carts are kept
    as history and never mutated again. The partial unique index below is what
    enforces the single active cart when two requests race to create one.
    """

    __tablename__ = "cart"

    id: Mapped[int] = mapped_column(BigIntPK, primary_key=True)
    user_id: Mapped[int] = mapped_column(BigInteger, nullable=False, index=True)
    status: Mapped[str] = mapped_column(
        String(20), nullable=False, default=CartStatus.ACTIVE
    )
    checked_out_at: Mapped[Optional[datetime]] = mapped_column(
        DateTime(timezone=True), nullable=True
    )

    # Relationships
    items: Mapped[list["CartItem"]] = relationship(
        back_populates="cart",
        cascade="all, delete-orphan",
        order_by="CartItem.id",
    )
    coupons: Mapped[list["CartCoupon"]] = relationship(
        back_populates="cart",
        cascade="all, delete-orphan",
        order_by="CartCoupon.id",
    )

    __table_args__ = (
        Index(
            "uq_cart_active_user",
            "user_id",
            unique=True,
            postgresql_where=text("status = 'active'"),
            sqlite_where=text("status = 'active'"),
        ),
        CheckConstraint(
            f"status IN ({sql_in_list(CartStatus.ALL)})", name="chk_cart_status"
        ),
    )

    @property
    def is_active(self) -> bool:
        return self.status == CartStatus.ACTIVE

    def __repr__(self) -> str:
        return f"<Cart(id={self.id}, user_id={self.user_id}, status={self.status})>"


class CartItem(TimestampMixin, Base):
    """
    A product line in a cart.

    price_at_addition is the unit price when the product was first added;
    topping up the quantity never refreshes it.
    """

    __tablename__ = "cart_item"

    id: Mapped[int] = mapped_column(BigIntPK, primary_key=True)
    cart_id: Mapped[int] = mapped_column(
        BigInteger, ForeignKey("cart.id", ondelete="CASCADE"), nullable=False, index=True
    )
    product_id: Mapped[int] = mapped_column(
        BigInteger, ForeignKey("product.id"), nullable=False, index=True
    )
    quantity: Mapped[int] = mapped_column(Integer, nullable=False, default=1)
    price_at_addition: Mapped[Decimal] = mapped_column(Numeric(12, 2), nullable=False)

    # Relationships
    cart: Mapped["Cart"] = relationship(back_populates="items")
    product: Mapped["Product"] = relationship()

    __table_args__ = (
        # One row per product per cart (repeated adds increment quantity)
        UniqueConstraint("cart_id", "product_id", name="uq_cart_item_cart_product"),
        CheckConstraint("quantity > 0", name="chk_cart_item_quantity_positive"),
    )

    def __repr__(self) -> str:
        return f"<CartItem(id={self.id}, cart_id={self.cart_id}, product_id={self.product_id}, qty={self.quantity})>"


class CartCoupon(Base):
    """
    A coupon attached to a cart with its current discount.

    discount_amount is recomputed whenever the cart contents change.
    """

    __tablename__ = "cart_coupon"

    id: Mapped[int] = mapped_column(BigIntPK, primary_key=True)
    cart_id: Mapped[int] = mapped_column(
        BigInteger, ForeignKey("cart.id", ondelete="CASCADE"), nullable=False, index=True
    )
    coupon_id: Mapped[int] = mapped_column(
        BigInteger, ForeignKey("coupon.id"), nullable=False, index=True
    )
    discount_amount: Mapped[Decimal] = mapped_column(
        Numeric(14, 4), nullable=False, default=Decimal("0")
    )
    is_auto_applied: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    applied_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now(), nullable=False
    )

    # Relationships
    cart: Mapped["Cart"] = relationship(back_populates="coupons")
    coupon: Mapped["Coupon"] = relationship()

    __table_args__ = (
        UniqueConstraint("cart_id", "coupon_id", name="uq_cart_coupon_cart_coupon"),
        CheckConstraint("discount_amount >= 0", name="chk_cart_coupon_discount_non_negative"),
    )

    def __repr__(self) -> str:
        return f"<CartCoupon(id={self.id}, cart_id={self.cart_id}, coupon_id={self.coupon_id})>"
