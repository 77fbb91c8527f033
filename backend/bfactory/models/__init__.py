from .users import User, SessionToken, Entitlement
from .catalog import Category, Product, ProductReview
from .orders import Order, OrderItem
from .payments import Payment
from .subscriptions import Subscription
from .restock import RestockRequest
from .notifications import Notification

__all__ = [
    'User', 'SessionToken', 'Entitlement',
    'Category', 'Product', 'ProductReview',
    'Order', 'OrderItem',
    'Payment',
    'Subscription',
    'RestockRequest',
    'Notification',
]
