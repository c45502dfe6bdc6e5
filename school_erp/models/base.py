# base.py
from sqlalchemy.orm import declarative_base
from sqlalchemy import Column, Integer

# Shared registry database (one for the whole deployment)
RegistryBase = declarative_base()

# Per-school database. Every tenant store gets these tables.
TenantBase = declarative_base()

class TenantModel(TenantBase):
    """
    A base mixin for multi-tenant architecture.
    This ensures models have a school_id column.
    """
    __abstract__ = True

    # The school lives in the registry database, so there is no foreign key here
    school_id = Column(Integer, nullable=False, index=True)
