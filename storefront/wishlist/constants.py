from storefront.common.logging_setup import get_logger

logger = get_logger("storefront.wishlist")
