# Overview: Flask extension instances for database, migrations and the local progress cache.

from flask_sqlalchemy import SQLAlchemy
from flask_migrate import Migrate

from .local_cache import LocalCache

db = SQLAlchemy()
migrate = Migrate()
local_cache = LocalCache()
