"""
High-level use cases for the digital library API.

Each service module orchestrates the repository and the object store to
implement business rules (login, subscription checks, signed downloads,
uploads, account administration).

Routers (FastAPI endpoints) call these services instead of touching the
database session or the storage client directly.
"""
