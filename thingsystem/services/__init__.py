"""Business logic: content store, composition and self-hosting."""

from .content_store import ContentStore
from .composition import render, render_document, render_page
from .capabilities import RouteRegistrar, SystemCapabilities
from .templates import TemplateSources
from .self_hosting import LoaderState, SelfHostingLoader, restart_process
from .template_watcher import TemplateWatcher

__all__ = [
    "ContentStore",
    "render",
    "render_document",
    "render_page",
    "RouteRegistrar",
    "SystemCapabilities",
    "TemplateSources",
    "LoaderState",
    "SelfHostingLoader",
    "restart_process",
    "TemplateWatcher",
]
