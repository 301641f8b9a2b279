"""
Coupon Repository - coupon lookups, usage counting and checkout-time usage accounting.
"""

from datetime import datetime
from decimal import Decimal
from typing import Sequence

from sqlalchemy.orm import selectinload
from sqlalchemy import Select, select, update, func, or_

from cart_api.models import Coupon, CouponUsage
from .base import BaseRepository


class CouponRepository(BaseRepository[Coupon]):
    """
    Repository for Coupon entities.

    Guarantees eager loading of the product restriction list.
    """

    @property
    def model(self) -> type[Coupon]:
        return Coupon

    def _base_query(self) -> Select:
        return select(Coupon).options(selectinload(Coupon.products))

    def find_by_code(self, code: str) -> Coupon | None:
        return self._db.scalar(self._base_query().where(Coupon.code == code))

    def lock_coupon(self, coupon_id: int) -> Coupon | None:
        """
        Read a coupon with a row lock held until the transaction ends.
        Usage counters are re-read from the database.
        """
        query = (
            self._base_query()
            .where(Coupon.id == coupon_id)
            .with_for_update(of=Coupon)
            .execution_options(populate_existing=True)
        )
        return self._db.scalar(query)

    def list_auto_apply(self, now: datetime) -> Sequence[Coupon]:
        """
        Active auto-apply coupons whose window contains `now`,
        oldest first (created_at, then id).
        """
        query = (
            self._base_query()
            .where(
                Coupon.is_auto_applied.is_(True),
                Coupon.is_active.is_(True),
                Coupon.start_time <= now,
                Coupon.expiry_time >= now,
            )
            .order_by(Coupon.created_at, Coupon.id)
        )
        return self._db.execute(query).scalars().all()

    def count_user_usages(self, coupon_id: int, user_id: int) -> int:
        query = (
            select(func.count())
            .select_from(CouponUsage)
            .where(
                CouponUsage.coupon_id == coupon_id,
                CouponUsage.user_id == user_id,
            )
        )
        return self._db.scalar(query) or 0

    def increment_usage(self, coupon_id: int) -> bool:
        """
        Bump current_total_uses unless the global cap is already reached.

        Returns:
            False when the cap is reached (no change made)
        """
        result = self._db.execute(
            update(Coupon)
            .where(
                Coupon.id == coupon_id,
                or_(
                    Coupon.max_total_uses.is_(None),
                    Coupon.current_total_uses < Coupon.max_total_uses,
                ),
            )
            .values(current_total_uses=Coupon.current_total_uses + 1)
            .execution_options(synchronize_session=False)
        )
        return result.rowcount == 1

    def record_usage(
        self,
        coupon_id: int,
        user_id: int,
        cart_id: int,
        discount_amount: Decimal,
    ) -> CouponUsage:
        usage = CouponUsage(
            coupon_id=coupon_id,
            user_id=user_id,
            cart_id=cart_id,
            discount_amount=discount_amount,
        )
        self._db.add(usage)
        self._db.flush()
        return usage
