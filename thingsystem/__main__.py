"""Run the Thing System: ``python -m thingsystem``.

No auto-reload. Restarts are requested by the service itself and carried
out by whatever supervises the process.
"""

import uvicorn

from .core.config import settings


def main() -> None:
    uvicorn.run("thingsystem.main:app", host=settings.host, port=settings.port, reload=False)


if __name__ == "__main__":
    main()
