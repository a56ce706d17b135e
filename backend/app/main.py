import logging
import os
from contextlib import asynccontextmanager

from dotenv import load_dotenv
from fastapi import FastAPI, Request, Response
from fastapi.middleware.cors import CORSMiddleware
from prometheus_client import CONTENT_TYPE_LATEST

from app.api.chat import router as chat_router
from app.api.sessions import router as sessions_router
from app.db import init_db
from app.services.generation_context import GenerationContext, build_generation_context

load_dotenv()
logger = logging.getLogger(__name__)

DEFAULT_ORIGINS = [
    "http://localhost:5173",
    "http://127.0.0.1:5173",
    "http://localhost:3000",
    "http://127.0.0.1:3000",
]


def configure_logging() -> None:
    level_name = os.getenv("LOG_LEVEL", "INFO").upper()
    logging.basicConfig(
        level=getattr(logging, level_name, logging.INFO),
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )


def _cors_origins() -> list[str]:
    raw = os.getenv("CORS_ORIGINS", "")
    origins = [item.strip() for item in raw.split(",") if item.strip()]
    return origins or DEFAULT_ORIGINS


def create_app(generation_context: GenerationContext | None = None) -> FastAPI:
    @asynccontextmanager
    async def lifespan(app: FastAPI):
        init_db()
        if getattr(app.state, "generation_context", None) is None:
            app.state.generation_context = build_generation_context()
        logger.info("Startup Simulator API ready")
        yield

    app = FastAPI(title="Startup Simulator API", lifespan=lifespan)
    app.state.generation_context = generation_context

    app.add_middleware(
        CORSMiddleware,
        allow_origins=_cors_origins(),
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    @app.get("/health")
    def health_check() -> dict[str, str]:
        return {"status": "ok"}

    @app.get("/metrics")
    def metrics(request: Request) -> Response:
        context = getattr(request.app.state, "generation_context", None)
        payload = context.metrics.export() if context is not None else b""
        return Response(content=payload, media_type=CONTENT_TYPE_LATEST)

    app.include_router(sessions_router)
    app.include_router(chat_router)
    return app


configure_logging()
app = create_app()
