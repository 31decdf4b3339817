from storefront.common.logging_setup import get_logger
from storefront.schema.full_schema import OrderStatus

logger = get_logger("storefront.orders")

# stripe checkout metadata values are capped , larger billing blobs are left out
STRIPE_METADATA_BILLING_MAX = 400
ORDER_HISTORY_LIMIT = 10
DEFAULT_CURRENCY = {"stripe": "USD", "tabby": "AED"}

# admin may move an order along these edges only
ADMIN_STATUS_TRANSITIONS = {
    OrderStatus.PENDING.value: {OrderStatus.PAID.value, OrderStatus.CANCELLED.value,
                                OrderStatus.FAILED.value, OrderStatus.COMPLETED.value},
    OrderStatus.PAID.value: {OrderStatus.COMPLETED.value},
}
