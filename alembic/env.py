from logging.config import fileConfig

from alembic import context

from sitecrawl.platform.db.base import Base
from sitecrawl.platform.db.session import get_engine

# Import models here so their tables are registered on Base.metadata
from sitecrawl.features.crawl.models.crawl_result import BrokenLink, CrawlResult  # noqa: F401
from sitecrawl.features.pages.models.page import Page  # noqa: F401

config = context.config

if config.config_file_name is not None:
    fileConfig(config.config_file_name)

target_metadata = Base.metadata


def run_migrations_offline() -> None:
    context.configure(
        url=str(get_engine().url),
        target_metadata=target_metadata,
        literal_binds=True,
        dialect_opts={"paramstyle": "named"},
    )
    with context.begin_transaction():
        context.run_migrations()


def run_migrations_online() -> None:
    with get_engine().connect() as connection:
        context.configure(connection=connection, target_metadata=target_metadata)
        with context.begin_transaction():
            context.run_migrations()


if context.is_offline_mode():
    run_migrations_offline()
else:
    run_migrations_online()
