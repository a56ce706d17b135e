"""Celery task package."""

# Ensure task decorators are imported when package is loaded.
from app.tasks.generation_tasks import run_generation_pipeline_task

__all__ = ["run_generation_pipeline_task"]
