"""
TraceHub: Compliance Traceability Service
SQLAlchemy extension instance shared by every model module.

Usage:
    from tracehub.models import db
"""

from flask_sqlalchemy import SQLAlchemy

db = SQLAlchemy()
