"""Database setup for reelpipe."""

from flask_sqlalchemy import SQLAlchemy

db = SQLAlchemy()


def init_db(app):
    """Bind the database to the app and create tables."""
    db.init_app(app)
    with app.app_context():
        from reelpipe import models  # noqa: F401

        db.create_all()
