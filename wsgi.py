"""
Gunicorn entry point.

    gunicorn wsgi:application --workers 4 --bind 0.0.0.0:$PORT

Run `alembic upgrade head` before starting production workers; the
production config does not create tables.
"""
from application import app

application = app
