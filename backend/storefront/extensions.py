# Overview: Flask extension instances for database and migrations.

from flask_sqlalchemy import SQLAlchemy
from flask_migrate import Migrate

db = SQLAlchemy()
migrate = Migrate()

# Key under app.extensions holding the PromotionScheduler lifecycle object.
PROMOTION_SCHEDULER_KEY = "promotion_scheduler"
