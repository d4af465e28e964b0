from __future__ import annotations

import os
from typing import Any, Mapping

from flask import Flask

from .extensions import db, migrate, csrf
from .cli import draw_cli
from .views.draws import draws_bp
from .views.public import public_bp


def create_app(test_config: Mapping[str, Any] | None = None) -> Flask:
    app = Flask(__name__)

    app.config["SECRET_KEY"] = os.environ.get("SECRET_KEY", "dev-secret-change-me")
    app.config["SQLALCHEMY_DATABASE_URI"] = os.environ.get("DATABASE_URL", "sqlite:///santadraw.db")
    app.config["SQLALCHEMY_TRACK_MODIFICATIONS"] = False

    # Empty means "derive from SECRET_KEY"; links only open on instances sharing it.
    app.config["SANTA_DRAW_PASSPHRASE"] = os.environ.get("SANTA_DRAW_PASSPHRASE", "")
    app.config["SANTA_MAX_ATTEMPTS"] = int(os.environ.get("SANTA_MAX_ATTEMPTS", "100"))
    app.config["SANTA_BASE_URL"] = os.environ.get("SANTA_BASE_URL", "").strip()
    app.config["LOG_LEVEL"] = os.environ.get("LOG_LEVEL", "INFO").upper()

    if test_config:
        app.config.update(test_config)

    app.logger.setLevel(app.config["LOG_LEVEL"])

    db.init_app(app)
    migrate.init_app(app, db)
    csrf.init_app(app)

    # Blueprints
    app.register_blueprint(public_bp)
    app.register_blueprint(draws_bp)

    app.cli.add_command(draw_cli)

    with app.app_context():
        db.create_all()

    return app
