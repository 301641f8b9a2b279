"""
Cart Repository - Data access for carts, their items and attached coupons.
Eager loading keeps the cart view to a fixed number of queries.
"""

from datetime import datetime
from decimal import Decimal

from sqlalchemy.orm import selectinload, joinedload
from sqlalchemy import Select, select, update

from cart_api.models import Cart, CartItem, CartCoupon, Coupon
from shared.config.constants import CartStatus
from .base import BaseRepository


class CartRepository(BaseRepository[Cart]):
    """
    Repository for the Cart aggregate.

    Guarantees eager loading of:
    - items -> product
    - coupons -> coupon -> products
    """

    @property
    def model(self) -> type[Cart]:
        return Cart

    def _base_query(self) -> Select:
        return (
            select(Cart)
            .options(
                selectinload(Cart.items).joinedload(CartItem.product)
            )
            .options(
                selectinload(Cart.coupons)
                .joinedload(CartCoupon.coupon)
                .selectinload(Coupon.products)
            )
        )

    # -------------------------------------------------------------------------
    # Carts
    # -------------------------------------------------------------------------

    def find_active_cart_by_user(self, user_id: int, for_update: bool = False) -> Cart | None:
        """
        Find the user's active cart.

        With for_update the cart row is locked first (no joins, so the lock is
        valid on PostgreSQL) and the aggregate is then re-read fresh.
        """
        if not for_update:
            query = self._base_query().where(
                Cart.user_id == user_id,
                Cart.status == CartStatus.ACTIVE,
            )
            return self._db.scalar(query)

        cart_id = self._db.scalar(
            select(Cart.id)
            .where(
                Cart.user_id == user_id,
                Cart.status == CartStatus.ACTIVE,
            )
            .with_for_update()
        )
        if cart_id is None:
            return None
        return self.find_cart_by_id(cart_id, populate_existing=True)

    def find_cart_by_id(self, cart_id: int, populate_existing: bool = False) -> Cart | None:
        """Cart with items and coupons loaded."""
        return self.find_by_id(cart_id, populate_existing=populate_existing)

    def lock_cart(self, cart_id: int) -> Cart | None:
        """Lock a cart row by id and return the freshly loaded aggregate."""
        locked_id = self._db.scalar(
            select(Cart.id).where(Cart.id == cart_id).with_for_update()
        )
        if locked_id is None:
            return None
        return self.find_cart_by_id(locked_id, populate_existing=True)

    def create_cart(self, user_id: int) -> Cart:
        """
        Insert a new active cart.

        Raises IntegrityError on flush if the user already has an active cart.
        """
        cart = Cart(user_id=user_id, status=CartStatus.ACTIVE)
        self._db.add(cart)
        self._db.flush()
        return cart

    def mark_checked_out(self, cart: Cart, checked_out_at: datetime) -> None:
        """Close the cart and drop its coupon attachments."""
        cart.status = CartStatus.CHECKED_OUT
        cart.checked_out_at = checked_out_at
        cart.coupons.clear()
        self._db.flush()

    # -------------------------------------------------------------------------
    # Items
    # -------------------------------------------------------------------------

    def find_item_by_id(self, item_id: int) -> CartItem | None:
        """Cart item with its cart (for ownership and state checks)."""
        return self._db.scalar(
            select(CartItem)
            .options(joinedload(CartItem.cart))
            .where(CartItem.id == item_id)
        )

    def upsert_item(
        self,
        cart_id: int,
        product_id: int,
        quantity: int,
        unit_price: Decimal,
    ) -> None:
        """
        Add quantity to the cart's line for product_id, creating it if needed.

        An existing line keeps its price_at_addition; unit_price is only used
        for a new line. Raises IntegrityError if a concurrent insert wins.
        """
        result = self._db.execute(
            update(CartItem)
            .where(
                CartItem.cart_id == cart_id,
                CartItem.product_id == product_id,
            )
            .values(quantity=CartItem.quantity + quantity)
            .execution_options(synchronize_session=False)
        )
        if result.rowcount == 0:
            self._db.add(
                CartItem(
                    cart_id=cart_id,
                    product_id=product_id,
                    quantity=quantity,
                    price_at_addition=unit_price,
                )
            )
        self._db.flush()

    def update_item_quantity(self, item: CartItem, quantity: int) -> CartItem:
        item.quantity = quantity
        self._db.flush()
        return item

    def delete_item(self, item: CartItem) -> None:
        self.delete(item)

    # -------------------------------------------------------------------------
    # Coupons
    # -------------------------------------------------------------------------

    def attach_coupon(
        self,
        cart_id: int,
        coupon_id: int,
        discount_amount: Decimal,
        is_auto_applied: bool,
    ) -> CartCoupon:
        """Raises IntegrityError if the coupon is already on the cart."""
        cart_coupon = CartCoupon(
            cart_id=cart_id,
            coupon_id=coupon_id,
            discount_amount=discount_amount,
            is_auto_applied=is_auto_applied,
        )
        self._db.add(cart_coupon)
        self._db.flush()
        return cart_coupon

    def update_coupon_discount(self, cart_coupon: CartCoupon, discount_amount: Decimal) -> None:
        cart_coupon.discount_amount = discount_amount
        self._db.flush()

    def detach_coupon(self, cart_coupon: CartCoupon) -> None:
        self.delete(cart_coupon)
