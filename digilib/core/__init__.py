"""
Core utilities shared across the digital library API.

This package hosts configuration, logging setup, the tagged API error,
password hashing, JWT helpers, rate limiting and small shared utilities.
Services depend on these primitives instead of reading os.environ or
building HTTP responses themselves.
"""
