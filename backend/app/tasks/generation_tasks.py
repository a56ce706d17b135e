import logging

from app.celery_app import celery_app, get_worker_generation_context
from app.generation.pipeline import GenerationPipeline
from app.services.session_store import session_store

logger = logging.getLogger(__name__)


@celery_app.task(bind=True, name="generation.run_pipeline")
def run_generation_pipeline_task(self, session_id: str) -> dict:
    logger.info("Task %s running generation for session %s", self.request.id, session_id)
    pipeline = GenerationPipeline(get_worker_generation_context(), session_store)
    return pipeline.run(session_id)
