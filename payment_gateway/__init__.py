"""Stripe payment gateway adapter.

Creates checkout sessions for carts and turns signature-verified Stripe
webhooks into domain events on the Redis Streams bus.
"""
