"""The capability set handed to the system Thing's server fragment.

The fragment gets a store accessor (the request-scoped store plus the
read-only renderers over it) and a hook for registering HTTP handlers
(the registrar plus the Thing API router). It never sees the app, the
settings or the loader, and needs no imports from this package.
"""

from dataclasses import dataclass
from typing import Any, Callable, Iterator, Sequence, Type

from fastapi import APIRouter, FastAPI
from fastapi.responses import JSONResponse, Response

from ..core.constants import SYSTEM_THING_ID
from .composition import render_document, render_page
from .content_store import ContentStore


class RouteRegistrar:
    """Narrow view of a FastAPI app that only allows adding routes."""

    def __init__(self, app: FastAPI):
        self._app = app

    def add_route(
        self,
        path: str,
        endpoint: Callable[..., Any],
        methods: Sequence[str] = ("GET",),
        response_class: Type[Response] = JSONResponse,
    ) -> None:
        self._app.add_api_route(
            path,
            endpoint,
            methods=list(methods),
            response_class=response_class,
        )

    def include_router(self, router: APIRouter) -> None:
        self._app.include_router(router)


@dataclass(frozen=True)
class SystemCapabilities:
    """What the server fragment's ``setup(capabilities)`` receives.

    Attributes:
        get_store: FastAPI dependency yielding a request-scoped ContentStore.
        routes: registrar for the fragment's HTTP handlers.
        things_router: the ``/api/things`` router, for ``routes.include_router``.
        render_document: renders the page shell of the system Thing.
        render_page: renders one Thing as a standalone preview document.
        system_thing_id: id of the Thing whose fragment is running.
    """

    get_store: Callable[..., Iterator[ContentStore]]
    routes: RouteRegistrar
    things_router: APIRouter
    render_document: Callable[..., str] = render_document
    render_page: Callable[..., str] = render_page
    system_thing_id: str = SYSTEM_THING_ID
