"""API route collection.

This module intentionally avoids importing submodules at package import time so
that tests can import specific route modules (e.g. `chmanager.api.routes.reports`)
without pulling in the others.
"""

__all__ = [
    "connections",
    "reports",
    "compare",
]
