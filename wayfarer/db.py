from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker

from wayfarer.models import Base


def make_sessionmaker(database_url: str, create_tables: bool = True) -> sessionmaker:
    kwargs = {"pool_pre_ping": True}
    if database_url.startswith("sqlite"):
        kwargs["connect_args"] = {"check_same_thread": False}
    engine = create_engine(database_url, **kwargs)
    if create_tables:
        Base.metadata.create_all(engine)
    return sessionmaker(bind=engine, autoflush=False, autocommit=False, expire_on_commit=False)
