from sqlmodel import SQLModel, create_engine, Session
from shopcore.config import settings


engine = create_engine(
    settings.database_url,
    echo=False,
    pool_pre_ping=True,      # checks dead connections
)


def create_db_and_tables():
    from shopcore import models  # noqa: F401  registers every table
    SQLModel.metadata.create_all(engine)


def session_factory() -> Session:
    return Session(engine)


def get_session():
    with Session(engine) as session:
        yield session
