import logging
import os
from collections.abc import Callable, Mapping
from typing import Optional

from fastapi import FastAPI
from fastapi.responses import JSONResponse

_log = logging.getLogger("barpos.health")


def add_standard_health(
    app: FastAPI,
    env_key: str = "ENV",
    checks: Optional[Mapping[str, Callable[[], None]]] = None,
):
    """
    Register GET /health.

    `checks` maps a component name to a callable that raises when the
    component is unusable; any failure turns the answer into a 503.
    """

    @app.get("/health")
    def _health():
        components = {}
        ok = True
        for name, check in (checks or {}).items():
            try:
                check()
                components[name] = "ok"
            except Exception as e:
                _log.warning("health check %s failed: %s", name, e)
                components[name] = "error"
                ok = False
        body = {
            "status": "ok" if ok else "degraded",
            "env": os.getenv(env_key, "dev"),
            "service": app.title,
            "version": getattr(app, "version", None),
        }
        if components:
            body["components"] = components
        return JSONResponse(status_code=200 if ok else 503, content=body)
