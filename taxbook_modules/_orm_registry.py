"""
Module ORM Registry (``taxbook_modules._orm_registry``).

Ensures every module-level ORM model is imported so ``Base.metadata``
holds its table before tables are created.  ``create_all_tables()`` is the
one entry point scripts, the facade and ``tests/conftest.py`` use to get
the complete schema.
"""

from __future__ import annotations

from sqlalchemy.engine import Engine


def import_all_orm_models() -> None:
    """Import kernel models and every ``taxbook_modules.*.orm`` module.  Idempotent."""
    import taxbook_kernel.models  # noqa: F401
    import taxbook_modules.receipts.orm  # noqa: F401
    import taxbook_modules.tax.orm  # noqa: F401


def create_all_tables(engine: Engine | None = None) -> None:
    """Create kernel and module tables on ``engine`` (default: the global engine)."""
    from taxbook_kernel.db.engine import create_tables

    import_all_orm_models()
    create_tables(engine)


def drop_all_tables(engine: Engine | None = None) -> None:
    from taxbook_kernel.db.engine import drop_tables

    import_all_orm_models()
    drop_tables(engine)
