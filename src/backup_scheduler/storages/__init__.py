from .protocol import Storage
from .sqlalchemy import InMemoryStorage, SqlAlchemyStorage

__all__ = ["Storage", "SqlAlchemyStorage", "InMemoryStorage"]
