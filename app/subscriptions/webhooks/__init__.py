"""
Stripe webhook endpoint for subscription events.
"""
