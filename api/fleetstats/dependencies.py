from typing import Annotated

from fastapi import Depends, Request

from fleetstats.store.base import EventStore


def get_store(request: Request) -> EventStore:
    """FastAPI dependency: the event store opened in the app lifespan."""
    return request.app.state.store


Store = Annotated[EventStore, Depends(get_store)]
