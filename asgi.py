"""
asgi.py -- ASGI entry point.

Run with:  uvicorn asgi:app --host 0.0.0.0 --port 8000

Settings come from the environment / .env (see core/config.py). SECRET_KEY
is required unless DEBUG=true.
"""

from api.main import create_app

app = create_app()
