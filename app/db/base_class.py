# db/base_class.py
from datetime import datetime

from sqlalchemy import Column, DateTime, MetaData
from sqlalchemy.orm import as_declarative

# Deterministic names for constraints the models leave unnamed
NAMING_CONVENTION = {
    "uq": "uq_%(table_name)s_%(column_0_name)s",
    "fk": "fk_%(table_name)s_%(column_0_name)s_%(referred_table_name)s",
    "pk": "pk_%(table_name)s",
}


@as_declarative(metadata=MetaData(naming_convention=NAMING_CONVENTION))
class Base:
    """Declarative base for the lead engine tables; every table carries created/updated timestamps."""

    created_at = Column(DateTime, default=datetime.utcnow)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)
