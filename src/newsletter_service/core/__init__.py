"""
Newsletter service core: storage, idempotency, outbox and delivery.
"""
