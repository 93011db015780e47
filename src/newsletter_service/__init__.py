"""
Newsletter Service

Publishes newsletter issues to confirmed subscribers through an
idempotent admin endpoint and a transactional delivery outbox.
"""

__version__ = "1.0.0"
