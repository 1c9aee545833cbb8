__all__ = [
    "SERVICE_API",
    "SERVICE_WORKER",
    "Settings",
    "get_settings",
]

from bibflow_core.constants import SERVICE_API, SERVICE_WORKER
from bibflow_core.settings import Settings, get_settings
