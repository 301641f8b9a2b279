"""
Product Repository - read access to the catalog plus the checkout stock decrement.
"""

from sqlalchemy import Select, select, update

from cart_api.models import Product
from .base import BaseRepository


class ProductRepository(BaseRepository[Product]):
    """
    Repository for Product entities.

    Outside checkout products are only read. Stock changes go through
    decrement_stock, which never lets stock_quantity go below zero.
    """

    @property
    def model(self) -> type[Product]:
        return Product

    def _base_query(self) -> Select:
        return select(Product)

    def find_product(self, product_id: int) -> Product | None:
        """Current price, availability and stock of a product."""
        return self.find_by_id(product_id)

    def lock_product(self, product_id: int) -> Product | None:
        """
        Read a product with a row lock held until the transaction ends.
        The row is re-read from the database even if already in the session.
        """
        query = (
            self._base_query()
            .where(Product.id == product_id)
            .with_for_update()
            .execution_options(populate_existing=True)
        )
        return self._db.scalar(query)

    def decrement_stock(self, product_id: int, quantity: int) -> bool:
        """
        Subtract quantity from stock if enough is left.

        Returns:
            False when the product is missing or stock is short (no change made)
        """
        result = self._db.execute(
            update(Product)
            .where(
                Product.id == product_id,
                Product.stock_quantity >= quantity,
            )
            .values(stock_quantity=Product.stock_quantity - quantity)
            .execution_options(synchronize_session=False)
        )
        return result.rowcount == 1
