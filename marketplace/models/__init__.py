"""Models package - exports all SQLAlchemy models."""
from marketplace.models.zone import Zone, normalize_zone
from marketplace.models.company import Company, CompanyDeliveryFee
from marketplace.models.app_user import User, UserRole, PLATFORM_ADMIN_ROLES
from marketplace.models.address import Address
from marketplace.models.category import Category
from marketplace.models.product import Product
from marketplace.models.promotion import Promotion, PromotionType, promotion_product, promotion_category
from marketplace.models.order import (
    Order, OrderStatus, PaymentMethod, PaymentStatus, normalize_payment_method
)
from marketplace.models.order_item import OrderItem
from marketplace.models.order_status_history import OrderStatusHistory
from marketplace.models.cash_collection import CashCollection
from marketplace.models.stock_history import StockHistory, StockChangeType
from marketplace.models.saved_cart import SavedCart, SavedCartLine
from marketplace.models.notification import Notification, NotificationType

__all__ = [
    'Zone', 'normalize_zone',
    'Company', 'CompanyDeliveryFee',
    'User', 'UserRole', 'PLATFORM_ADMIN_ROLES',
    'Address', 'Category', 'Product',
    'Promotion', 'PromotionType', 'promotion_product', 'promotion_category',
    'Order', 'OrderStatus', 'PaymentMethod', 'PaymentStatus', 'normalize_payment_method',
    'OrderItem', 'OrderStatusHistory', 'CashCollection',
    'StockHistory', 'StockChangeType',
    'SavedCart', 'SavedCartLine',
    'Notification', 'NotificationType',
]
