""" main.py: FastAPI application entry point and runtime configuration.

This module builds the ASGI app, mounts the API routers, configures CORS (Cross-Origin Resource Sharing), and
exposes a Prometheus metrics endpoint. On startup it creates the in-memory conversation session manager and
schedules the idle-session sweep; on shutdown it stops the sweep. The orchestrator itself is built on the first
chat request (see api.chat.get_orchestrator), so importing the app never needs network access. When executed
directly, it starts a Uvicorn server using host/port values from configuration.
"""

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from prometheus_client import make_asgi_app
import logging
from config import CONFIG
from core.orchestrator import build_session_manager
from services.session_scheduler import start_session_sweeper, shutdown_session_sweeper
from version import __version__

# --- Router Imports ---
from api import chat as chat_router
from api import health as health_router

logger = logging.getLogger(__name__)

app = FastAPI(title="Policy Assistant", version=__version__)

# Include routers
app.include_router(chat_router.router, prefix="/api", tags=["Chat"])
app.include_router(health_router.router, tags=["Health"])

# Add Prometheus metrics endpoint
metrics_app = make_asgi_app()
app.mount("/metrics", metrics_app)

# Configure CORS
allow_origins = CONFIG.get('cors', {}).get('allow_origins', ["*"])
app.add_middleware(
    CORSMiddleware,
    allow_origins=allow_origins,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


@app.on_event("startup")
def on_startup() -> None:
    if getattr(app.state, "session_manager", None) is None:
        app.state.session_manager = build_session_manager()
    start_session_sweeper(app, app.state.session_manager)
    logger.info("[startup] Policy Assistant %s started\n", __version__)


@app.on_event("shutdown")
def on_shutdown() -> None:
    shutdown_session_sweeper(app)
    logger.info("[shutdown] Session sweep stopped\n")


# The uvicorn server is used to run the FastAPI application.
if __name__ == '__main__':
    import uvicorn
    logger.info("[__main__] Starting Uvicorn server for main.py\n")
    uvicorn.run(
        app,
        host=CONFIG.get('server', {}).get('host', '0.0.0.0'),
        port=CONFIG.get('server', {}).get('port', 8080)
    )
