"""Storefront API package."""

from storefront.api.routes import design_file_router, order_router, paypal_router

__all__ = ["design_file_router", "order_router", "paypal_router"]
