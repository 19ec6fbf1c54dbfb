from sqlalchemy.orm import DeclarativeBase, sessionmaker
from sqlalchemy.pool import StaticPool
from sqlalchemy import create_engine
from storefront.core.config import settings

class Base(DeclarativeBase): pass

def build_engine(dsn: str):
    if dsn.startswith('sqlite'):
        # in-memory databases must share one connection across threads
        return create_engine(dsn, connect_args={'check_same_thread': False}, poolclass=StaticPool)
    return create_engine(
        dsn,
        pool_pre_ping=True,
        connect_args={'options': f'-c statement_timeout={settings.DB_STATEMENT_TIMEOUT_MS}'},
    )

engine = build_engine(settings.POSTGRES_DSN)
SessionLocal = sessionmaker(bind=engine, autoflush=False, autocommit=False)
