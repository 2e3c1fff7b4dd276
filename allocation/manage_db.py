"""Simple DB management helpers: create or drop the schema.

Usage:
  allocation-db create   # creates tables
  allocation-db drop     # drops every table
"""
import logging
import sys

from .config import configure_logging, get_config
from .models.sql_models import Base
from .repo_factory import get_engine

logger = logging.getLogger(__name__)


def create_db(db_url=None):
    engine = get_engine(db_url or get_config().DATABASE_URL)
    Base.metadata.create_all(engine)
    logger.info('Database initialized at %s', engine.url)


def drop_db(db_url=None):
    engine = get_engine(db_url or get_config().DATABASE_URL)
    Base.metadata.drop_all(engine)
    logger.info('Dropped all tables at %s', engine.url)


def main(argv=None):
    argv = sys.argv[1:] if argv is None else argv
    configure_logging(get_config().LOG_LEVEL)
    if not argv:
        print('Usage: allocation-db create|drop')
        return 1
    cmd = argv[0]
    if cmd == 'create':
        create_db()
    elif cmd == 'drop':
        drop_db()
    else:
        print('Unknown command')
        return 1
    return 0


if __name__ == '__main__':
    sys.exit(main())
