from coursestore.models.user import User
from coursestore.models.course import Course
from coursestore.models.cart import CartItem
from coursestore.models.order import Order
from coursestore.models.order_item import OrderItem
from coursestore.models.enrollment import Enrollment
from coursestore.models.notifications import Notification

# add ALL models here
