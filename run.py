"""
Entry point for the contour service.

Running this script with ``python run.py`` starts the FastAPI server.
The application defined in ``backend/topo/main.py`` is imported after
adjusting the Python path to include the repository root.  Set
``CONTOUR_DEBUG=1`` for per-step engine logs.
"""

from __future__ import annotations

import logging
import sys
from pathlib import Path

import uvicorn

logging.basicConfig(
    level=logging.DEBUG,
    format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
)


def main() -> None:
    """Run the Uvicorn server hosting the contour service."""
    # Put the repository root on sys.path so that ``backend`` can be
    # imported as a package.
    repo_root = Path(__file__).resolve().parent
    if str(repo_root) not in sys.path:
        sys.path.append(str(repo_root))

    # Imported inside main() to avoid modifying sys.path at import time.
    from backend.topo.main import app  # type: ignore

    uvicorn.run(app, host="0.0.0.0", port=8000)


if __name__ == "__main__":
    main()
