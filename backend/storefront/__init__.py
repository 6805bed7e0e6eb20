# backend/storefront/__init__.py
import atexit
import logging

from flask import Flask

from .config import Config
from .extensions import db, migrate, PROMOTION_SCHEDULER_KEY


def _configure_logging(app: Flask) -> None:
    level = getattr(logging, str(app.config.get("LOG_LEVEL", "INFO")).upper(), logging.INFO)
    if not logging.getLogger().handlers:
        logging.basicConfig(format="%(asctime)s %(levelname)s [%(name)s] %(message)s")
    logging.getLogger("storefront").setLevel(level)
    app.logger.setLevel(level)


def create_app(config_overrides: dict | None = None) -> Flask:
    app = Flask(__name__, instance_relative_config=True)
    app.config.from_object(Config)
    if config_overrides:
        app.config.update(config_overrides)

    _configure_logging(app)

    # Initialize extensions
    db.init_app(app)
    migrate.init_app(app, db)

    # Import models so Alembic can discover metadata reliably
    from . import models  # noqa: F401

    # A bad discount schedule raises here, at startup
    from .services.discount_service import DiscountPolicy
    app.extensions["discount_policy"] = DiscountPolicy.from_config(app.config)

    # Register blueprints
    from .routes.system import system_bp
    from .routes.cart import cart_bp
    from .routes.checkout import checkout_bp
    from .routes.promotions import promotions_bp

    app.register_blueprint(system_bp)
    app.register_blueprint(cart_bp)
    app.register_blueprint(checkout_bp)
    app.register_blueprint(promotions_bp)

    # One promotion scheduler per process
    from .services.promotion_scheduler import PromotionScheduler
    scheduler = PromotionScheduler(
        app,
        interval_seconds=app.config["PROMOTION_SCHEDULER_INTERVAL_SECONDS"],
    )
    app.extensions[PROMOTION_SCHEDULER_KEY] = scheduler
    if app.config.get("PROMOTION_SCHEDULER_ENABLED") and not app.config.get("TESTING"):
        scheduler.start()
        atexit.register(scheduler.stop)

    # Register CLI commands
    from .cli import register_commands
    register_commands(app)

    return app
