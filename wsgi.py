"""
Flask-Migrate / Alembic entry point.

Usage:
    flask --app wsgi db migrate -m "description"
    flask --app wsgi db upgrade
    flask --app wsgi run-auto-sampling
"""

from fieldcall import create_app

app = create_app()
