from app.celery_app import celery_app
from app.services.session_store import session_store


def enqueue_generation(session_id: str) -> dict:
    session = session_store.get_session(session_id)
    if session is None:
        raise ValueError("Session not found")

    task = celery_app.send_task("generation.run_pipeline", args=[session_id])
    return {
        "sessionId": session_id,
        "taskId": str(task.id),
        "status": "queued",
        "message": "Generation queued",
    }
