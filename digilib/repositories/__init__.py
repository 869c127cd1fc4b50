"""
Persistence adapters.

SQLRepository encapsulates how data is stored and retrieved with SQLAlchemy.
Services depend on it rather than opening sessions themselves.
"""
