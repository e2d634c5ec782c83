"""
PMO Portfolio API
Shared SQLAlchemy handle and model package.

Usage:
    from pmo.models import db
"""

from flask_sqlalchemy import SQLAlchemy

db = SQLAlchemy()
