import logging

from fastapi import APIRouter, Depends, HTTPException, Response, status

from app.api.deps import get_generation_context
from app.api.security import get_requester_id
from app.generation.errors import (
    InvalidModule,
    MissingContext,
    ProviderError,
    QuotaExhausted,
    SessionNotFound,
)
from app.generation.pipeline import GenerationPipeline
from app.models.session import (
    CoreOutputsResponse,
    GenerationJobResponse,
    GenerationRunResponse,
    RegenerateResponse,
    SessionCreateRequest,
    SessionCreateResponse,
    SessionDetail,
    SessionSummary,
)
from app.services.generation_context import GenerationContext
from app.services.generation_queue import enqueue_generation
from app.services.session_store import session_store

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/sessions", tags=["Sessions"])

RUN_MESSAGES = {
    "completed": "Core outputs generated successfully",
    "partial": "Generation stopped early; some outputs are available",
    "failed": "Generation failed",
}


def _require_owned_session(session_id: str, user_id: str) -> None:
    if not session_store.session_belongs_to_user(session_id, user_id):
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Session not found")


@router.post("", response_model=SessionCreateResponse, status_code=status.HTTP_201_CREATED)
def create_session(
    payload: SessionCreateRequest,
    user_id: str = Depends(get_requester_id),
) -> SessionCreateResponse:
    session = session_store.create_session(payload, user_id)
    logger.info("Session %s created for user %s", session["sessionId"], user_id)
    return SessionCreateResponse(sessionId=session["sessionId"], message="Session created successfully")


@router.get("", response_model=list[SessionSummary])
def list_sessions(user_id: str = Depends(get_requester_id)) -> list[SessionSummary]:
    return [SessionSummary(**item) for item in session_store.get_sessions_for_user(user_id)]


@router.get("/{sessionId}", response_model=SessionDetail)
def get_session(sessionId: str, user_id: str = Depends(get_requester_id)) -> SessionDetail:
    _require_owned_session(sessionId, user_id)
    session = session_store.get_session(sessionId)
    if session is None:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Session not found")
    return SessionDetail(**session)


@router.delete("/{sessionId}", status_code=status.HTTP_204_NO_CONTENT)
def delete_session(sessionId: str, user_id: str = Depends(get_requester_id)) -> Response:
    _require_owned_session(sessionId, user_id)
    if not session_store.delete_session(sessionId):
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Session not found")
    return Response(status_code=status.HTTP_204_NO_CONTENT)


@router.post("/{sessionId}/generate", response_model=None)
def generate_core_outputs(
    sessionId: str,
    response: Response,
    background: bool = False,
    user_id: str = Depends(get_requester_id),
    context: GenerationContext = Depends(get_generation_context),
) -> GenerationRunResponse | GenerationJobResponse:
    _require_owned_session(sessionId, user_id)

    if background:
        try:
            job = enqueue_generation(sessionId)
        except ValueError as exc:
            raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=str(exc)) from exc
        except Exception as exc:  # pragma: no cover - broker outage
            logger.error("Failed to enqueue generation for session %s: %s", sessionId, exc)
            raise HTTPException(
                status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
                detail=f"Failed to enqueue generation: {exc}",
            ) from exc
        response.status_code = status.HTTP_202_ACCEPTED
        return GenerationJobResponse(**job)

    try:
        result = GenerationPipeline(context, session_store).run(sessionId)
    except SessionNotFound as exc:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Session not found") from exc
    return GenerationRunResponse(**result, message=RUN_MESSAGES.get(result["status"], "Generation finished"))


@router.post("/{sessionId}/regenerate/{moduleName}", response_model=RegenerateResponse)
def regenerate_module(
    sessionId: str,
    moduleName: str,
    user_id: str = Depends(get_requester_id),
    context: GenerationContext = Depends(get_generation_context),
) -> RegenerateResponse:
    _require_owned_session(sessionId, user_id)
    try:
        result = GenerationPipeline(context, session_store).regenerate(sessionId, moduleName)
    except SessionNotFound as exc:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Session not found") from exc
    except (InvalidModule, MissingContext) as exc:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(exc)) from exc
    except QuotaExhausted as exc:
        raise HTTPException(status_code=status.HTTP_503_SERVICE_UNAVAILABLE, detail=str(exc)) from exc
    except ProviderError as exc:
        raise HTTPException(
            status_code=status.HTTP_502_BAD_GATEWAY,
            detail=f"Failed to regenerate {moduleName}: {exc}",
        ) from exc
    return RegenerateResponse(**result, message=f"{moduleName} regenerated successfully")


@router.get("/{sessionId}/core_outputs", response_model=CoreOutputsResponse)
def get_core_outputs(sessionId: str, user_id: str = Depends(get_requester_id)) -> CoreOutputsResponse:
    _require_owned_session(sessionId, user_id)
    payload = session_store.get_core_outputs(sessionId)
    if payload is None:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Session not found")
    return CoreOutputsResponse(**payload)
