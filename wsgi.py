"""
WSGI / Flask-Migrate entry point.

Usage:
    flask --app wsgi db upgrade
    flask --app wsgi create-user
    gunicorn wsgi:app
"""

from tracehub import create_app

app = create_app()
