from shopcore.models.user import User
from shopcore.models.product import Product
from shopcore.models.cart import CartItem
from shopcore.models.order_item import OrderItem
from shopcore.models.order import Order
from shopcore.models.order_log import OrderLog
from shopcore.models.payment_attempt import PaymentAttempt

# add ALL models here
