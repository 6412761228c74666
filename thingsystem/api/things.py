"""Thing API endpoints.

Thin wrappers over ContentStore. The router is not mounted by the app
factory: the system Thing's server fragment registers it through its
capabilities, so the API is part of what the system Thing defines.
"""

from typing import Iterator, List

from fastapi import APIRouter, BackgroundTasks, Depends, Query, Request, Response
from sqlalchemy.orm import Session

from ..database import get_db
from ..models import Thing
from ..schemas import ChildAttach, ThingCreate, ThingResponse, ThingSummary, ThingUpdate
from ..services.content_store import ContentStore

router = APIRouter(prefix="/api/things", tags=["things"])


def get_store(db: Session = Depends(get_db)) -> Iterator[ContentStore]:
    """FastAPI dependency: a ContentStore bound to the request's session."""
    yield ContentStore(db)


def _restart_after_response(request: Request, background_tasks: BackgroundTasks, reason: str) -> None:
    """Schedule a restart once the response has been sent."""
    loader = getattr(request.app.state, "loader", None)
    if loader is not None:
        background_tasks.add_task(loader.system_updated, reason)


@router.get("", response_model=List[ThingSummary])
def list_things(
    skip: int = Query(0, ge=0),
    limit: int = Query(100, ge=1, le=1000),
    store: ContentStore = Depends(get_store),
):
    """List Things in creation order."""
    return store.list_things(skip, limit)


@router.post("", response_model=ThingResponse, status_code=201)
def create_thing(payload: ThingCreate, store: ContentStore = Depends(get_store)):
    """Create a Thing from the default template."""
    return store.create(payload.name, thing_type=payload.type)


@router.get("/{thing_id}", response_model=ThingResponse)
def get_thing(thing_id: str, store: ContentStore = Depends(get_store)):
    return store.get(thing_id)


@router.put("/{thing_id}", response_model=ThingResponse)
def update_thing(
    thing_id: str,
    payload: ThingUpdate,
    request: Request,
    background_tasks: BackgroundTasks,
    store: ContentStore = Depends(get_store),
):
    """
    Merge component changes and record a new version if anything changed.

    Editing the system Thing restarts the service after the response.
    """
    thing, changed = store.update_components(thing_id, payload.components.changes())
    if changed and thing.is_system:
        _restart_after_response(
            request, background_tasks, f"system thing updated to version {thing.version}"
        )
    return thing


@router.post("/{thing_id}/restore/{version}", response_model=ThingResponse)
def restore_version(
    thing_id: str,
    version: int,
    request: Request,
    background_tasks: BackgroundTasks,
    store: ContentStore = Depends(get_store),
):
    """Make a historical version current (does not create a new version)."""
    thing = store.restore(store.get(thing_id), version)
    if thing.is_system:
        _restart_after_response(
            request, background_tasks, f"system thing restored to version {version}"
        )
    return thing


@router.post("/{thing_id}/children", response_model=ThingResponse)
def add_child(thing_id: str, payload: ChildAttach, store: ContentStore = Depends(get_store)):
    """Attach a child, moving it from any previous parent."""
    parent = store.get(thing_id)
    child = store.get(payload.child_id)
    return store.add_child(parent, child, payload.order)


@router.delete("/{thing_id}/children/{child_id}", response_model=ThingResponse)
def remove_child(thing_id: str, child_id: str, store: ContentStore = Depends(get_store)):
    parent = store.get(thing_id)
    child = store.get(child_id)
    return store.remove_child(parent, child)


@router.delete("/{thing_id}", status_code=204)
def delete_thing(thing_id: str, store: ContentStore = Depends(get_store)):
    """Delete a Thing; its children are detached, not deleted."""
    thing: Thing = store.get(thing_id)
    store.delete(thing)
    return Response(status_code=204)
