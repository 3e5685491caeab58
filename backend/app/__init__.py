"""
StitchCraft Backend — Application Package Initializer
======================================================

What: Marks the `app` directory as a Python package.
Why:  Enables module imports like `from app.config import settings`.
Who:  Used implicitly by Python's import system and explicitly by Alembic, pytest, and uvicorn.

Architecture Note:
    The measurement backend follows a layered architecture:

    ┌─────────────────────────────────────┐
    │           Routes (API Layer)        │  ← HTTP concerns, tenant headers
    ├─────────────────────────────────────┤
    │         Services (Business Logic)   │  ← Tenancy checks, snapshots, sync
    ├─────────────────────────────────────┤
    │   Reconciliation (pure functions)   │  ← Compare / resolve / normalize
    ├─────────────────────────────────────┤
    │       Models & Schemas (Data)       │  ← SQLAlchemy ORM + Pydantic
    ├─────────────────────────────────────┤
    │        Database (Persistence)       │  ← Async SQLAlchemy sessions
    └─────────────────────────────────────┘

    The reconciliation layer has no I/O at all: it takes plain dicts and
    returns plain dicts, so it is tested without a database or HTTP client.
"""

__version__ = "1.0.0"
