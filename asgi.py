"""
asgi.py -- Process entry point for the MovieFlix gateway.

Configuration is read from the environment (and .env) exactly once, here.

Run with:  uvicorn asgi:app --reload
"""

from api.main import create_app

app = create_app()
