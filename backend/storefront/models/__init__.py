from .auth import User, UserSession
from .catalog import Product, ProductUnit
from .carts import Cart, CartLine
from .rfqs import RFQ, RFQLine
from .orders import Order, OrderLine, Payment

__all__ = [
    'User', 'UserSession',
    'Product', 'ProductUnit',
    'Cart', 'CartLine',
    'RFQ', 'RFQLine',
    'Order', 'OrderLine', 'Payment',
]
