"""Domain models and types for the tariffs service.

This package contains in-memory (Pydantic) models describing tariffs and the
responses built from them, plus the error taxonomy shared by the store, the
cache boundary and the synchronization job. They are independent from
persistence models so that business logic and testing can evolve without DB
coupling.
"""

__all__ = [
    "errors",
    "tariffs",
]
