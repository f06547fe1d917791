from logging.config import fileConfig
from alembic import context
import logging
from dotenv import load_dotenv
import os
import sys
from sqlalchemy import create_engine
from sqlalchemy import pool

default_dotenv_path = '../.env'
dotenv_path = default_dotenv_path
db_url_override = None

# Use Alembic's x-arguments
for x_arg in context.get_x_argument(as_dictionary=False):
    if x_arg.lower().strip().startswith('db-url='):
        db_url_override = x_arg.split('=', 1)[1].strip()
    elif x_arg.lower().strip().startswith('dotenv-path='):
        dotenv_path = x_arg.split('=', 1)[1].strip()
    else:
        print(f"ERROR: Unrecognized Alembic -x argument: '{x_arg}' Valid arguments are: db-url, dotenv-path", file=sys.stderr)
        sys.exit(1)

load_dotenv(dotenv_path=dotenv_path)

# Make the application packages importable for autogenerate support
sys.path.append(os.path.dirname(os.path.dirname(os.path.dirname(os.path.abspath(__file__)))))
from database import Base  # noqa: E402
import models  # noqa: E402,F401  (registers every table on Base.metadata)

# this is the Alembic Config object, which provides
# access to the values within the .ini file in use.
config = context.config

# Interpret the config file for Python logging.
if config.config_file_name is not None:
    fileConfig(config.config_file_name)

target_metadata = Base.metadata

log = logging.getLogger('alembic.env')

db_url = db_url_override or os.getenv("DATABASE_URL", "sqlite:///./tutor_profiles.db")


def run_migrations_offline() -> None:
    """Run migrations in 'offline' mode.

    Calls to context.execute() here emit the given string to the
    script output.
    """
    context.configure(
        url=db_url,
        target_metadata=target_metadata,
        literal_binds=True,
        dialect_opts={"paramstyle": "named"},
    )

    with context.begin_transaction():
        context.run_migrations()


def run_migrations_online() -> None:
    """Run migrations in 'online' mode against a live connection."""
    connectable = create_engine(db_url, poolclass=pool.NullPool)

    with connectable.connect() as connection:
        context.configure(
            connection=connection,
            target_metadata=target_metadata,
            render_as_batch=connection.dialect.name == "sqlite",
        )

        log.info("Starting migrations...")
        try:
            with context.begin_transaction():
                context.run_migrations()
            log.info("Migrations completed successfully - transaction committed")
        except Exception as e:
            log.error(f"Migration failed with error: {e}", exc_info=True)
            raise


if context.is_offline_mode():
    run_migrations_offline()
else:
    run_migrations_online()
