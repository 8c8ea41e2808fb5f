"""
EWC API Tester
Database models package.

All models share the single Flask-SQLAlchemy ``db`` instance defined here.
"""

from flask_sqlalchemy import SQLAlchemy

db = SQLAlchemy()
