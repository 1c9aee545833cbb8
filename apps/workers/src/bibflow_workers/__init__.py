__all__ = ["run_forever", "run_once"]

from bibflow_workers.main import run_forever, run_once
