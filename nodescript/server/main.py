"""
NodeScript compile service (FastAPI).

Start with:
    python -m nodescript.server.main

Or via uvicorn directly:
    uvicorn nodescript.server.main:app --port 3001 --reload
"""
from __future__ import annotations

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from nodescript.config import Settings, configure_logging, load_env
from nodescript.server.routes.compile_routes import router

# Load .env from the project root so NODESCRIPT_* settings are available
# without manual `export`.
load_env()
settings = Settings.from_env()
configure_logging(settings)

# ---------------------------------------------------------------------------
# FastAPI application
# ---------------------------------------------------------------------------

app = FastAPI(title="NodeScript Compiler API", version="1.0.0")

app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

app.include_router(router, prefix="/api")


@app.get("/health")
async def health() -> dict:
    return {"status": "ok"}


# ---------------------------------------------------------------------------
# Entry point
# ---------------------------------------------------------------------------

if __name__ == "__main__":
    import uvicorn

    uvicorn.run(
        "nodescript.server.main:app",
        host=settings.host,
        port=settings.port,
        log_level=settings.log_level.lower(),
    )
