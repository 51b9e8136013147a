"""Alembic environment for dagplane.

The database is the one the service itself would connect to, configured
through the same ``DB_*``/``DATABASE_URL`` settings.
"""

from logging.config import fileConfig

from alembic import context

from dagplane.config import load_settings
from dagplane.db import models  # noqa: F401
from dagplane.db.base import Base, create_db_engine, get_database_url

if context.config.config_file_name is not None:
    fileConfig(context.config.config_file_name)

settings = load_settings()
options = {"target_metadata": Base.metadata, "compare_type": True}

if context.is_offline_mode():
    # Emit SQL to stdout instead of connecting
    context.configure(url=get_database_url(settings), literal_binds=True, **options)
    with context.begin_transaction():
        context.run_migrations()
else:
    engine = create_db_engine(settings)
    try:
        with engine.connect() as connection:
            context.configure(connection=connection, **options)
            with context.begin_transaction():
                context.run_migrations()
    finally:
        engine.dispose()
