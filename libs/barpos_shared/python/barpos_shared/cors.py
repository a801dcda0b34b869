from __future__ import annotations

from fastapi.middleware.cors import CORSMiddleware

# Vite dev server of the POS front-end.
DEV_ORIGINS = ["http://localhost:5173", "http://127.0.0.1:5173"]


def parse_origins(allowed: str | None) -> list[str]:
    return [o.strip().rstrip("/") for o in (allowed or "").split(",") if o.strip()]


def configure_cors(app, allowed: str | None):
    raw_origins = parse_origins(allowed) or DEV_ORIGINS

    if "*" in raw_origins:
        # Wildcard origins must not be combined with credentialed requests.
        origins = ["*"]
        allow_credentials = False
    else:
        origins = raw_origins
        allow_credentials = True

    app.add_middleware(
        CORSMiddleware,
        allow_origins=origins,
        allow_credentials=allow_credentials,
        allow_methods=["GET", "POST", "PUT", "DELETE", "OPTIONS"],
        allow_headers=["*"],
        expose_headers=["X-Request-ID"],
    )
