from pet_boarding.models.user import User
from pet_boarding.models.pet import Pet
from pet_boarding.models.order import Order, OrderStatus
from pet_boarding.models.capacity import CapacityDay

__all__ = ["User", "Pet", "Order", "OrderStatus", "CapacityDay"]
