"""
Flask extensions initialization.

Extensions are created unbound here and attached to the app in create_app().
"""
from flask_caching import Cache
from flask_sqlalchemy import SQLAlchemy
from flask_migrate import Migrate

# Database (members, tiers, points history)
db = SQLAlchemy()

# Migrations
migrate = Migrate()

# Tier catalog cache - backend chosen in utils.cache.init_cache()
cache = Cache()
