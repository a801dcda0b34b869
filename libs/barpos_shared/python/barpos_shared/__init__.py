from .request_id import RequestIDMiddleware, get_request_id
from .cors import configure_cors
from .errors import install_exception_handlers, is_prod_env
from .health import add_standard_health
from .logging import setup_json_logging
from .lifecycle import build_lifespan

__all__ = [
    "RequestIDMiddleware",
    "get_request_id",
    "configure_cors",
    "install_exception_handlers",
    "is_prod_env",
    "add_standard_health",
    "setup_json_logging",
    "build_lifespan",
]
