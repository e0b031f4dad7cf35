import logging

from flask import Flask
from .config import Config
from schoolhub.extensions import db, migrate


def create_app(config_object=Config):
    app = Flask(__name__)
    app.config.from_object(config_object)

    logging.getLogger("schoolhub").setLevel(app.config.get("LOG_LEVEL", "INFO"))

    db.init_app(app)
    migrate.init_app(app, db)

    # models must be imported before create_all sees their tables
    from schoolhub import models  # noqa: F401

    if app.config.get("CREATE_TABLES_ON_STARTUP"):
        with app.app_context():
            db.create_all()

    return app
