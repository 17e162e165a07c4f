from storefront.models.user import User, UserSession, UserAuditLog
from storefront.models.product import Category, Product
from storefront.models.stock_movement import StockMovement
from storefront.models.reservation_void import ReservationVoid
from storefront.models.cart import CartItem
from storefront.models.order import Order, OrderItem

# Tables owned by each service; a service only creates its own.
USERS_TABLES = [User.__table__, UserSession.__table__, UserAuditLog.__table__]
PRODUCTS_TABLES = [Category.__table__, Product.__table__, StockMovement.__table__, ReservationVoid.__table__]
ORDERS_TABLES = [CartItem.__table__, Order.__table__, OrderItem.__table__]

__all__ = [
    "User", "UserSession", "UserAuditLog",
    "Category", "Product", "StockMovement", "ReservationVoid",
    "CartItem", "Order", "OrderItem",
    "USERS_TABLES", "PRODUCTS_TABLES", "ORDERS_TABLES",
]
