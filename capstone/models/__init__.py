"""
Capstone Workflow Service
SQLAlchemy instance shared by every model module.

Usage:
    from capstone.models import db
"""

from flask_sqlalchemy import SQLAlchemy

db = SQLAlchemy()
