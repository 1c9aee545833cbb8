__all__ = ["create_app"]

from bibflow_api.app import create_app
