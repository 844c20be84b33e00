"""Models package - exports all SQLAlchemy models."""
# Catalog
from tabletop.models.menu_category import MenuCategory
from tabletop.models.menu_item import MenuItem, MenuItemAvailability, ALLERGY_TAG_OPTIONS
from tabletop.models.discount_preset import DiscountPreset

# Floor and staff
from tabletop.models.restaurant_table import RestaurantTable, TableStatus
from tabletop.models.staff_member import StaffMember, StaffRole

# Orders and checkout
from tabletop.models.order import (
    Order, OrderType, OrderStatus, DteType, PaymentMethod,
    ORDER_TRANSITIONS, TERMINAL_STATUSES
)
from tabletop.models.order_item import OrderItem, OrderItemStatus
from tabletop.models.payment_split import PaymentSplit
from tabletop.models.checkout_draft import CheckoutDraft

__all__ = [
    'MenuCategory', 'MenuItem', 'MenuItemAvailability', 'ALLERGY_TAG_OPTIONS', 'DiscountPreset',
    'RestaurantTable', 'TableStatus', 'StaffMember', 'StaffRole',
    'Order', 'OrderType', 'OrderStatus', 'DteType', 'PaymentMethod', 'ORDER_TRANSITIONS', 'TERMINAL_STATUSES',
    'OrderItem', 'OrderItemStatus', 'PaymentSplit', 'CheckoutDraft',
]
