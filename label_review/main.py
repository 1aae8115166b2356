from typing import Optional

from fastapi import FastAPI

from label_review.config import Settings, get_settings
from label_review.routes import events, health
from label_review.services.analyzer_service import LabelAnalyzer, OpenAIVisionAnalyzer
from label_review.services.store import InMemorySubmissionStore, SubmissionStore
from label_review.services.validation_service import ValidationOrchestrator
from label_review.triggers.event_triggers import EventTriggers


def create_app(
    settings: Optional[Settings] = None,
    store: Optional[SubmissionStore] = None,
    analyzer: Optional[LabelAnalyzer] = None,
) -> FastAPI:
    """Build the service with its store, analyzer and triggers wired together."""
    settings = settings or get_settings()
    store = store or InMemorySubmissionStore()
    analyzer = analyzer or OpenAIVisionAnalyzer.from_settings(settings)

    app = FastAPI(
        title=settings.app_name,
        description="Event-driven AI validation of alcohol beverage label submissions",
        version="0.1.0",
    )

    # Shared collaborators, reachable from route handlers via request.app.state
    app.state.settings = settings
    app.state.store = store
    app.state.triggers = EventTriggers(store, ValidationOrchestrator(store, analyzer, settings))

    # Register route modules.
    # Each router handles a specific concern: health checks and event ingestion.
    app.include_router(health.router)
    app.include_router(events.router)

    return app


app = create_app()
