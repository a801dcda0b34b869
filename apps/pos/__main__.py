"""
Run the POS API under uvicorn:

  POS_PORT=8080 python -m apps.pos
"""
import os

import uvicorn


def main() -> None:
    reload = os.getenv("POS_RELOAD", "false").lower() in ("1", "true", "yes")
    uvicorn.run(
        "apps.pos.app.main:app",
        host=os.getenv("POS_HOST", "0.0.0.0"),
        port=int(os.getenv("POS_PORT", "8000")),
        reload=reload,
        reload_dirs=["apps", "libs"] if reload else None,
        # keep the JSON root handler installed by the app
        log_config=None,
    )


if __name__ == "__main__":
    main()
