"""
UniVibe Campus Platform
SQLAlchemy extension instance shared by every model module.

Usage:
    from univibe.models import db
"""

from flask_sqlalchemy import SQLAlchemy

db = SQLAlchemy()
