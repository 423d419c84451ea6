"""SQLAlchemy Declarative Base."""

from sqlalchemy.orm import DeclarativeBase


class Base(DeclarativeBase):
    """Common base class."""

    pass
