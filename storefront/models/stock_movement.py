"""
Stock Movement model - append-only inventory ledger

Rows are inserted in the same transaction that changes
products.stock_quantity and are never updated or deleted, so for every
product: initial stock + sum(delta) == stock_quantity.
"""
from sqlalchemy import CheckConstraint, Column, DateTime, ForeignKey, Index, Integer, String
from sqlalchemy.sql import func

from storefront.core.database import Base


class StockMovement(Base):
    __tablename__ = "stock_movements"

    id = Column(Integer, primary_key=True, index=True)
    product_id = Column(
        Integer,
        ForeignKey("products.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )

    delta = Column(Integer, nullable=False)  # negative for sale, positive for release/restock
    movement_type = Column(String(20), nullable=False)
    reference_id = Column(String(64))  # order id for sale/release
    note = Column(String(255))

    created_at = Column(DateTime(timezone=True), nullable=False, server_default=func.now())

    __table_args__ = (
        CheckConstraint(
            "movement_type IN ('sale', 'release', 'restock', 'adjustment')",
            name="chk_movement_type",
        ),
        Index("ix_stock_movements_product_reference", product_id, reference_id),
    )

    def __repr__(self):
        return f"<StockMovement {self.id}: {self.movement_type} {self.delta:+d} on product {self.product_id}>"
