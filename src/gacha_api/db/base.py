from sqlalchemy import MetaData
from sqlalchemy.orm import DeclarativeBase

# Alembic batch mode on SQLite needs every constraint to carry a name
NAMING_CONVENTION = {
    "ix": "ix_%(table_name)s_%(column_0_N_name)s",
    "uq": "uq_%(table_name)s_%(column_0_N_name)s",
    "fk": "fk_%(table_name)s_%(column_0_name)s_%(referred_table_name)s",
    "ck": "ck_%(table_name)s_%(constraint_name)s",
}


class Base(DeclarativeBase):
    """Declarative base shared by every gacha table."""

    metadata = MetaData(naming_convention=NAMING_CONVENTION)
