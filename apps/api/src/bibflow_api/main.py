from __future__ import annotations

import logging

import uvicorn
from dotenv import find_dotenv, load_dotenv

from bibflow_api import create_app
from bibflow_core import SERVICE_API, get_settings
from bibflow_observability import setup_logging


def main() -> None:
    load_dotenv(find_dotenv(usecwd=True))
    settings = get_settings()
    setup_logging(SERVICE_API)
    logging.getLogger(__name__).info(
        "api_starting",
        extra={
            "environment": settings.environment,
            "host": settings.api_host,
            "port": settings.api_port,
            "background_enrichment": settings.api_background_enrichment,
        },
    )
    uvicorn.run(create_app(), host=settings.api_host, port=settings.api_port, log_config=None)


if __name__ == "__main__":
    main()
