from .database import create_engine, create_session_factory, create_tables
from .memory import InMemoryStorage
from .product_catalog import IProductCatalog, InMemoryProductCatalog, load_catalog
from .unit_of_work import InMemoryUnitOfWork, SqlUnitOfWork

__all__ = [
    "create_engine",
    "create_session_factory",
    "create_tables",
    "InMemoryStorage",
    "IProductCatalog",
    "InMemoryProductCatalog",
    "load_catalog",
    "InMemoryUnitOfWork",
    "SqlUnitOfWork",
]
