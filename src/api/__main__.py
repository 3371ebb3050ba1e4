"""Entry point for running the web app."""

import os

import uvicorn

if __name__ == "__main__":
    host = os.getenv("HOST", "127.0.0.1")
    # PORT for PaaS platforms (Railway, Heroku, etc.)
    port = int(os.getenv("PORT") or "8000")
    uvicorn.run("api.main:create_app", factory=True, host=host, port=port)
