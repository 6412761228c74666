"""Authoritative on-disk sources of the system Thing.

The four component blobs of the system Thing are defined by four files in
the templates directory. This module reads them and fingerprints them; it
never talks to the store.
"""

import hashlib
import logging
from pathlib import Path
from typing import Dict, NamedTuple, Optional

from ..exceptions import ContentUnreadableError

logger = logging.getLogger(__name__)

# Component key -> file name inside the templates directory.
SOURCE_FILES = {
    "html": "index.html",
    "css": "style.css",
    "clientJs": "client.js",
    "serverJs": "server.py",
}


def digest(data: bytes) -> str:
    return hashlib.sha256(data).hexdigest()


class TemplateSnapshot(NamedTuple):
    """Components and their digests, taken from one read of the files."""

    components: Dict[str, str]
    digests: Dict[str, str]


class TemplateSources:
    """The four template files backing the system Thing."""

    def __init__(self, directory: Path):
        self.directory = Path(directory)

    def path_for(self, key: str) -> Path:
        return self.directory / SOURCE_FILES[key]

    def paths(self) -> Dict[str, Path]:
        return {key: self.path_for(key) for key in SOURCE_FILES}

    def load(self) -> TemplateSnapshot:
        """Read all four sources.

        Raises:
            ContentUnreadableError: if any source is missing, unreadable or
                not valid UTF-8.
        """
        components: Dict[str, str] = {}
        digests: Dict[str, str] = {}
        for key, path in self.paths().items():
            try:
                data = path.read_bytes()
                components[key] = data.decode("utf-8")
            except (OSError, UnicodeDecodeError) as e:
                raise ContentUnreadableError(str(path), e) from e
            digests[key] = digest(data)
        return TemplateSnapshot(components, digests)

    def fingerprint(self) -> Dict[str, Optional[str]]:
        """SHA-256 of each source; ``None`` where a source cannot be read.

        ``None`` never equals a stored digest, so an unreadable source
        always counts as changed.
        """
        digests: Dict[str, Optional[str]] = {}
        for key, path in self.paths().items():
            try:
                digests[key] = digest(path.read_bytes())
            except OSError as e:
                logger.warning(
                    "Cannot fingerprint template %s: %s", path, e,
                    extra={"template": str(path)},
                )
                digests[key] = None
        return digests
