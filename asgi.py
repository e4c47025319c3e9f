"""
asgi.py -- The deployable TokenGate ASGI application.

api/main.py builds the JSON API (token exchange, identity, articles, health).
web/routes.py holds the browser-facing OAuth2 login redirects. Neither
imports the other; this module joins them so the provider callback and
POST /api/token are served by the same process and share app.state.

Run with:  uvicorn asgi:app
"""

from api.main import app
from web.routes import router as oauth_login_router

app.include_router(oauth_login_router, tags=["OAuth2 Login"])

__all__ = ["app"]
