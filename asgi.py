"""
asgi.py -- Application assembly for the marketplace auth service.

The only place that reads process configuration. get_settings() fails fast
if SECRET_KEY is missing or too short, before the server accepts a request.

Run with:  uvicorn asgi:app --reload
"""

from api.main import create_app
from core.config import get_settings

app = create_app(get_settings())
