"""
Reservation void markers

A row per (product, order) that has been released. Written in the same
transaction as the release, even when nothing was outstanding, so a
reserve for that order that arrives late is refused instead of taking
stock nobody will give back.
"""
from sqlalchemy import Column, DateTime, ForeignKey, Integer, String, UniqueConstraint
from sqlalchemy.sql import func

from storefront.core.database import Base


class ReservationVoid(Base):
    __tablename__ = "reservation_voids"

    id = Column(Integer, primary_key=True, index=True)
    product_id = Column(
        Integer,
        ForeignKey("products.id", ondelete="CASCADE"),
        nullable=False,
    )
    reference_id = Column(String(64), nullable=False)
    created_at = Column(DateTime(timezone=True), nullable=False, server_default=func.now())

    __table_args__ = (
        UniqueConstraint("product_id", "reference_id", name="uq_reservation_void_product_reference"),
    )

    def __repr__(self):
        return f"<ReservationVoid product={self.product_id} ref={self.reference_id}>"
