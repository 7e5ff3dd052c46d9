"""
ASGI entrypoint: expose `app` pour les process managers / déploiements.

- En production, un process manager (ex: gunicorn + uvicorn workers) importe `backend.asgi:app`.
- La configuration FastAPI (routers, middlewares, exceptions) est centralisée dans backend.app_setup.
"""

from backend.app import app

if __name__ == "__main__":
    import os
    import uvicorn
    uvicorn.run(
        "backend.asgi:app",
        host="0.0.0.0",
        port=int(os.getenv("PORT", "8000")),
        reload=True,
    )
