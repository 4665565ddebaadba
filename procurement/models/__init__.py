"""
Office Procurement Platform
Model package - exposes the shared SQLAlchemy instance.

Usage:
    from procurement.models import db
"""

from flask_sqlalchemy import SQLAlchemy

db = SQLAlchemy()
