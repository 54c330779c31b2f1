from __future__ import annotations

from starlette.requests import Request


def safe_route_label(*, request: Request) -> str:
    """
    Return a safe path label for logs and metrics.

    Prefer the framework's route template (e.g. /api/consultations/{storage_id}) so
    storage handles in raw URLs never reach logs or metric labels.
    """

    route = request.scope.get("route")
    path = getattr(route, "path", None)
    if isinstance(path, str) and path:
        return path
    return "unmatched"
