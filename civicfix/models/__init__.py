"""
CivicFix
Model package - shared SQLAlchemy handle.

Usage:
    from civicfix.models import db
"""

from flask_sqlalchemy import SQLAlchemy

db = SQLAlchemy()
