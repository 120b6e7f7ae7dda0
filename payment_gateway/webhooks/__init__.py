"""Webhook inbound pipeline.

Each Stripe delivery is signature-verified, classified into a domain event
and handed to the publisher without waiting on the bus.
"""
