from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

from .models.sql_models import Base

_IN_MEMORY_URLS = ('sqlite://', 'sqlite:///:memory:')


def get_engine(db_url: str):
    if db_url.startswith('sqlite:'):
        kwargs = {'connect_args': {'check_same_thread': False}}
        if db_url in _IN_MEMORY_URLS:
            # one shared connection, otherwise every session sees an empty database
            kwargs['poolclass'] = StaticPool
        return create_engine(db_url, **kwargs)
    return create_engine(db_url)


def get_session_factory(db_url: str) -> sessionmaker:
    """Create the engine for `db_url`, make sure the schema exists, return a session factory."""
    engine = get_engine(db_url)
    Base.metadata.create_all(engine)
    return sessionmaker(bind=engine, expire_on_commit=False)
