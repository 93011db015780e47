"""
Shared API building blocks: error codes, exceptions, response envelopes
and middleware.
"""
