"""REST service for benchlab instruments.

Exposes the instrument dispatcher over HTTP with FastAPI: execute actions,
capture waveforms, test connections and run monitors.

Modules:
    bench: Dispatcher wrapper keeping per-instrument monitor backlogs.
    models: Pydantic request and response models.
    server: FastAPI application factory and ``benchlab-server`` entry point.
"""

from benchlab_service.bench import Bench
from benchlab_service.server import create_app

__all__ = [
    "Bench",
    "create_app",
]
