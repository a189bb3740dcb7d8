"""Shared Flask-SQLAlchemy instance.

Kept in its own module so models, blueprints and CLI commands can import
``db`` without importing the application.
"""

from flask_sqlalchemy import SQLAlchemy

db = SQLAlchemy()
