"""
WSGI / Flask CLI entry point.

Usage:
    gunicorn wsgi:app
    FLASK_APP=wsgi flask reconcile-events --dry-run
    FLASK_APP=wsgi flask db init       # first time only (creates migrations/)
    FLASK_APP=wsgi flask db migrate -m "description"
"""

from univibe import create_app

app = create_app()
