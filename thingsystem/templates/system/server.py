"""Server fragment of the system Thing.

Executed once per process by the self-hosting loader, which calls
``setup(capabilities)``. Everything the service answers over HTTP, apart
from /health, is registered here, using only what the capabilities hand
over.
"""

from fastapi import Depends
from fastapi.responses import HTMLResponse, Response


def setup(capabilities):
    get_store = capabilities.get_store
    system_id = capabilities.system_thing_id

    def index(store=Depends(get_store)):
        system = store.get(system_id)
        return HTMLResponse(capabilities.render_document(system, store.find))

    def client_script(store=Depends(get_store)):
        system = store.get(system_id)
        script = (system.components or {}).get("clientJs", "")
        return Response(script, media_type="application/javascript")

    def preview(thing_id: str, store=Depends(get_store)):
        return HTMLResponse(capabilities.render_page(store.get(thing_id), store.find))

    capabilities.routes.include_router(capabilities.things_router)
    capabilities.routes.add_route("/", index, response_class=HTMLResponse)
    capabilities.routes.add_route("/thing-system.js", client_script, response_class=Response)
    capabilities.routes.add_route("/preview/{thing_id}", preview, response_class=HTMLResponse)
