"""
External service adapters for subscriptions.
"""

from .stripe_gateway import StripeGateway

__all__ = ["StripeGateway"]
