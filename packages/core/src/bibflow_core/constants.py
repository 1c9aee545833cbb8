from __future__ import annotations

SERVICE_API = "api"
SERVICE_WORKER = "enrichment-worker"
