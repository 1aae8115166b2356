from fastapi import APIRouter, Request

router = APIRouter()


@router.get("/health")
def health_check(request: Request):
    """Health endpoint — confirms FastAPI is running and reports the analyzer setup."""
    return {
        "status": "healthy",
        "analyzer": _check_analyzer(request.app.state.settings),
    }


def _check_analyzer(settings) -> dict:
    """Report which model is configured and whether a key is present (never the key)."""
    return {
        "model": settings.analyzer_model,
        "base_url": settings.analyzer_base_url,
        "api_key_configured": bool(settings.openai_api_key),
    }
