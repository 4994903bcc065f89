"""
Dependencies resolving the pipeline components owned by the application.
"""
from typing import Optional

from fastapi import HTTPException, Request

from wa_logger.pipeline.dispatcher import EventDispatcher
from wa_logger.transport.base import Transport


def get_dispatcher(request: Request) -> EventDispatcher:
    dispatcher = getattr(request.app.state, "dispatcher", None)
    if dispatcher is None:
        raise HTTPException(status_code=503, detail="event pipeline not ready")
    return dispatcher


def get_transport(request: Request) -> Optional[Transport]:
    return getattr(request.app.state, "transport", None)
