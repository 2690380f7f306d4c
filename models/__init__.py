"""
Persistence layer: SQLAlchemy models and the process-wide DBStorage instance.

The engine is created by storage.reload(), which the application factory calls
with the configured DATABASE_URL.
"""
from models.db_storage import DBStorage

storage = DBStorage()
