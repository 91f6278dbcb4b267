"""FastAPI application exposing scheduler status."""

from typing import Optional

from fastapi import FastAPI

from fleet.adapters.web.status_routes import status_router


def create_app(scheduler=None) -> FastAPI:
    """Build the status app; ``scheduler`` may be attached later via app.state."""
    application = FastAPI(title="smol-fleet")
    application.state.scheduler = scheduler
    application.include_router(status_router)
    return application


app = create_app()


def attach_scheduler(scheduler, application: Optional[FastAPI] = None) -> FastAPI:
    target = application or app
    target.state.scheduler = scheduler
    return target
