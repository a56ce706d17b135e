from fastapi import HTTPException, Request, status

from app.services.generation_context import GenerationContext


def get_generation_context(request: Request) -> GenerationContext:
    context = getattr(request.app.state, "generation_context", None)
    if context is None:
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail="Generation service is not configured",
        )
    return context
