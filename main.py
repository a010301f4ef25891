import logging
import os
from contextlib import asynccontextmanager
from pathlib import Path
from typing import Optional

from dotenv import load_dotenv
from fastapi import FastAPI, HTTPException, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import FileResponse, JSONResponse
from fastapi.staticfiles import StaticFiles

from routes.audio_route import router as audio_router
from routes.generation_route import router as generation_router
from routes.image_route import router as image_router
from routes.realtime_ws import router as realtime_router
from routes.session_route import router as session_router
from services.session_manager import ClientFactory, ConnectorFactory, SessionManager
from utils.errors import IllustratorError
from utils.logging_config import configure_logging
from utils.settings import Settings

BASE_DIR = Path(__file__).resolve().parent
PUBLIC_DIR = BASE_DIR / "public"

load_dotenv()  # Load environment variables from .env file if present

LOGGER = logging.getLogger(__name__)


def create_app(
    settings: Optional[Settings] = None,
    client_factory: Optional[ClientFactory] = None,
    connector_factory: Optional[ConnectorFactory] = None,
) -> FastAPI:
    """
    Create and configure the FastAPI application instance.

    Args:
        settings: Runtime settings; read from the environment when omitted.
        client_factory: Builds an AsyncOpenAI client for a session credential.
        connector_factory: Overrides how the realtime upstream is opened.
    """
    resolved_settings = settings or Settings.from_env()

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        """
        Attach the session manager to `app.state` and tear the session down
        (upstream, listeners, OpenAI client) on shutdown.
        """
        app.state.settings = resolved_settings
        app.state.session_manager = SessionManager(
            resolved_settings,
            client_factory=client_factory,
            connector_factory=connector_factory,
        )
        LOGGER.info(
            "Illustrator backend ready realtime=%s sample_rate=%s",
            resolved_settings.realtime_enabled,
            resolved_settings.sample_rate,
        )
        try:
            yield
        finally:
            await app.state.session_manager.end()

    app = FastAPI(lifespan=lifespan)
    app.add_middleware(CORSMiddleware, allow_origins=["*"], allow_methods=["*"], allow_headers=["*"])

    @app.exception_handler(IllustratorError)
    async def illustrator_error_handler(request: Request, exc: IllustratorError):
        return JSONResponse(status_code=exc.status_code, content=exc.to_payload())

    # Serve static assets from the public directory, if it exists.
    if PUBLIC_DIR.exists():
        app.mount("/public", StaticFiles(directory=PUBLIC_DIR), name="public")

    @app.get("/", include_in_schema=False)
    async def serve_index():
        """
        Serve the frontend index page from the public directory.
        """
        index_path = PUBLIC_DIR / "index.html"
        if not index_path.exists():
            raise HTTPException(status_code=404, detail="Frontend not found")
        return FileResponse(index_path)

    @app.get("/health")
    async def health(request: Request):
        """
        Liveness check reporting whether a session is running.
        """
        manager = getattr(request.app.state, "session_manager", None)
        return {
            "ok": True,
            "session_active": bool(manager and manager.active),
            "realtime_enabled": resolved_settings.realtime_enabled,
        }

    # Register application routers
    app.include_router(session_router)
    app.include_router(audio_router)
    app.include_router(generation_router)
    app.include_router(image_router)
    app.include_router(realtime_router)

    return app


configure_logging()
app = create_app()


if __name__ == "__main__":
    import uvicorn

    uvicorn.run(app, host=os.getenv("AII_HOST", "0.0.0.0"), port=int(os.getenv("PORT", "4000")))
