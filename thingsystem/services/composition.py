"""Composition engine: renders a Thing and its descendants into HTML.

Every rendered Thing becomes three blocks: a ``<style>`` scoped with CSS
``@scope`` to one render instance, a wrapper ``<div>`` holding the markup,
and a ``<script>`` running the client code inside its own try/catch so one
broken fragment cannot take down the page. Children are inlined where the
markup contains the literal children slot.

Rendering is read-only. It takes a lookup callable (usually
``ContentStore.find``) rather than the store, and the only source of
nondeterminism is the injected scope-id generator.
"""

import html
import json
import logging
import sys
import uuid
from typing import Callable, Iterable, List, Optional, Tuple

from ..core.constants import CHILDREN_SLOT, STYLE_SLOT
from ..exceptions import CycleDetectedError
from ..models import Thing

logger = logging.getLogger(__name__)

ThingLookup = Callable[[str], Optional[Thing]]
ScopeIdFactory = Callable[[], str]

_HEAD_END = "</head>"


def new_scope_id() -> str:
    """Default scope-id generator (122 random bits)."""
    return uuid.uuid4().hex


def render(
    thing: Thing,
    lookup: ThingLookup,
    new_scope_id: ScopeIdFactory = new_scope_id,
) -> str:
    """Render *thing* and its subtree as an HTML fragment.

    Raises:
        CycleDetectedError: if a Thing is reached again along one path.
    """
    return _render_all([thing], lookup, new_scope_id, ())


def render_document(
    root: Thing,
    lookup: ThingLookup,
    new_scope_id: ScopeIdFactory = new_scope_id,
) -> str:
    """Render the page served at ``/``.

    The root's markup is the whole document, so it is not wrapped. Its
    children are rendered into the children slot and its style goes into
    the empty ``<style></style>`` placeholder of the shell, or before
    ``</head>`` when there is no placeholder. The root's client script
    is not inlined; the shell loads it from ``/thing-system.js``.
    """
    components = root.components or {}
    document = components.get("html") or ""
    if CHILDREN_SLOT in document:
        children_html = _render_all(_ordered_children(root, lookup), lookup, new_scope_id, (root.id,))
        document = document.replace(CHILDREN_SLOT, children_html, 1)

    css = components.get("css") or ""
    style = f"<style>{_escape_end_tag(css, 'style')}</style>"
    if STYLE_SLOT in document:
        return document.replace(STYLE_SLOT, style, 1)
    if css.strip():
        if _HEAD_END in document:
            return document.replace(_HEAD_END, style + _HEAD_END, 1)
        logger.warning(
            "Style of %s dropped: its markup has neither a style placeholder nor a head", root.id,
            extra={"thing_id": root.id},
        )
    return document


def render_page(
    thing: Thing,
    lookup: ThingLookup,
    new_scope_id: ScopeIdFactory = new_scope_id,
) -> str:
    """Render one Thing's subtree as a standalone preview document."""
    body = render(thing, lookup, new_scope_id)
    return (
        "<!DOCTYPE html>\n"
        "<html>\n"
        "<head>\n"
        '<meta charset="utf-8">\n'
        f"<title>{html.escape(thing.name or thing.id)}</title>\n"
        "</head>\n"
        "<body>\n"
        f"{body}\n"
        "</body>\n"
        "</html>\n"
    )


class _Frame:
    """A Thing whose children are being rendered into its slot."""

    __slots__ = ("thing", "scope", "markup", "pending", "parts")

    def __init__(self, thing: Optional[Thing], scope: str, markup: str, children: Iterable[Thing]):
        self.thing = thing
        self.scope = scope
        self.markup = markup
        self.pending = iter(children)
        self.parts: List[str] = []


def _render_all(
    things: Iterable[Thing],
    lookup: ThingLookup,
    new_scope_id: ScopeIdFactory,
    ancestors: Tuple[str, ...],
) -> str:
    """Render *things* one after another, each with its whole subtree.

    Depth-first with an explicit stack of frames, so chain depth is bounded
    by memory rather than the interpreter's recursion limit. ``path`` holds
    the ids from the outermost ancestor down to the frame on top.
    """
    path = list(ancestors)
    on_path = set(ancestors)
    frames = [_Frame(None, "", "", things)]

    while True:
        frame = frames[-1]
        thing = next(frame.pending, None)

        if thing is None:
            if len(frames) == 1:
                return "".join(frame.parts)
            frames.pop()
            path.pop()
            on_path.discard(frame.thing.id)
            markup = frame.markup.replace(CHILDREN_SLOT, "".join(frame.parts), 1)
            frames[-1].parts.append(_envelope(frame.thing, frame.scope, markup))
            continue

        if thing.id in on_path:
            raise CycleDetectedError([*path, thing.id])
        scope = new_scope_id()
        markup = (thing.components or {}).get("html") or ""
        if CHILDREN_SLOT in markup:
            path.append(thing.id)
            on_path.add(thing.id)
            frames.append(_Frame(thing, scope, markup, _ordered_children(thing, lookup)))
        else:
            frame.parts.append(_envelope(thing, scope, markup))


def _envelope(thing: Thing, scope: str, markup: str) -> str:
    components = thing.components or {}
    return "".join((
        _style_block(scope, components.get("css") or ""),
        _markup_block(thing.id, scope, markup),
        _script_block(thing.id, scope, components.get("clientJs") or ""),
    ))


def _ordered_children(parent: Thing, lookup: ThingLookup) -> List[Thing]:
    """Resolve child ids and sort them by ``order``; list position breaks ties."""
    resolved = []
    for position, child_id in enumerate(parent.children or []):
        child = lookup(child_id)
        if child is None:
            logger.warning(
                "Skipping missing child %s of %s", child_id, parent.id,
                extra={"parent_id": parent.id, "child_id": child_id},
            )
            continue
        rank = child.order if child.order is not None else sys.maxsize
        resolved.append((rank, position, child))
    resolved.sort(key=lambda item: (item[0], item[1]))
    return [child for _, _, child in resolved]


def _style_block(scope: str, css: str) -> str:
    if not css.strip():
        return ""
    css = _escape_end_tag(css, "style")
    return f'<style>@scope ([data-thing-scope="{scope}"]) {{\n{css}\n}}</style>\n'


def _markup_block(thing_id: str, scope: str, markup: str) -> str:
    return (
        f'<div data-thing-id="{html.escape(thing_id)}" data-thing-scope="{scope}">'
        f"{markup}"
        "</div>\n"
    )


def _script_block(thing_id: str, scope: str, script: str) -> str:
    if not script.strip():
        return ""
    script = _escape_end_tag(script, "script")
    # The wrapper is already in the DOM when this runs; errors stay inside.
    return (
        "<script>\n"
        "(function (root) {\n"
        "try {\n"
        f"{script}\n"
        "} catch (error) {\n"
        f"console.error('Thing script failed:', {json.dumps(thing_id)}, error);\n"
        "}\n"
        f'}})(document.querySelector(\'[data-thing-scope="{scope}"]\'));\n'
        "</script>\n"
    )


def _escape_end_tag(text: str, tag: str) -> str:
    """Keep authored text from closing the element it is embedded in."""
    return text.replace(f"</{tag}", f"<\\/{tag}")
