"""Identifiers and defaults shared by the store, the renderer and the loader."""

# Fixed id of the singleton system Thing; also the root of the render tree.
SYSTEM_THING_ID = "system-thing"
SYSTEM_THING_NAME = "Thing System"
SYSTEM_THING_TYPE = "system"

# Build constant. Increment when the persisted system Thing must be
# regenerated even though its template sources did not change.
SYSTEM_VERSION = 2

# Component keys, in persisted/wire spelling.
COMPONENT_KEYS = ("html", "css", "clientJs", "serverJs")

# Exact sentinel substituted with the rendered children.
CHILDREN_SLOT = '<div class="children"></div>'

# Placeholder in the system page shell that receives the root style.
STYLE_SLOT = "<style></style>"

DEFAULT_COMPONENTS = {
    "html": (
        '<div id="app">\n'
        "    <h1>Hello from New Thing!</h1>\n"
        "</div>\n"
    ),
    "css": (
        "#app {\n"
        "    font-family: system-ui;\n"
        "    max-width: 800px;\n"
        "    margin: 0 auto;\n"
        "    background: white;\n"
        "    padding: 20px;\n"
        "    border-radius: 8px;\n"
        "    box-shadow: 0 2px 4px rgba(0,0,0,0.1);\n"
        "}\n"
    ),
    "clientJs": "// Client-side code goes here\nconsole.log('Thing is running!');\n",
    "serverJs": "# Server-side code goes here\n",
}
