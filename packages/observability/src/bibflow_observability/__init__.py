__all__ = ["bind", "bound", "request_id_middleware", "setup_logging"]

from bibflow_observability.context import bind, bound
from bibflow_observability.logging_setup import setup_logging
from bibflow_observability.middleware import request_id_middleware
