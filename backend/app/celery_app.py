import logging
import os

from celery import Celery
from celery.signals import worker_init
from dotenv import load_dotenv

from app.db import init_db
from app.services.generation_context import build_generation_context

load_dotenv()
logger = logging.getLogger(__name__)


def _broker_url() -> str:
    return os.getenv("CELERY_BROKER_URL", os.getenv("REDIS_URL", "redis://localhost:6379/0"))


def _backend_url() -> str:
    return os.getenv("CELERY_RESULT_BACKEND", os.getenv("REDIS_URL", "redis://localhost:6379/0"))


celery_app = Celery(
    "startup_simulator",
    broker=_broker_url(),
    backend=_backend_url(),
    include=["app.tasks.generation_tasks"],
)

celery_app.conf.update(
    task_serializer="json",
    accept_content=["json"],
    result_serializer="json",
    timezone="UTC",
    enable_utc=True,
    task_track_started=True,
    imports=("app.tasks.generation_tasks",),
)
celery_app.generation_context = None


@worker_init.connect
def _prepare_worker(**_: object) -> None:
    try:
        init_db()
    except Exception as exc:  # pragma: no cover - startup guard for local/dev race conditions
        logger.warning("Celery startup continuing without immediate DB init: %s", exc)
    celery_app.generation_context = build_generation_context()


def get_worker_generation_context():
    if celery_app.generation_context is None:
        celery_app.generation_context = build_generation_context()
    return celery_app.generation_context
