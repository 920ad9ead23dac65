"""
Flask-Migrate / WSGI entry point.

Usage:
    flask --app wsgi db upgrade
    gunicorn wsgi:app
"""

from capstone import create_app

app = create_app()
