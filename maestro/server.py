"""Entry point for the Dev Maestro HTTP server."""

from __future__ import annotations

import logging
from typing import Optional

import uvicorn

from .api import create_app
from .config import ConfigHolder, ensure_local_structure
from .maestro_logging import setup_logging

logger = logging.getLogger("maestro.server")


def run(holder: Optional[ConfigHolder] = None) -> None:
    """Load configuration, prepare ``local/`` and serve the API until interrupted."""
    holder = holder or ConfigHolder()
    config = holder.config
    setup_logging(config.log_level, config.log_file)

    try:
        ensure_local_structure(config.install_dir)
    except OSError as e:
        logger.warning(f"Could not create local customization directory in {config.install_dir}: {e}")

    if config.plan_path is None:
        logger.warning(
            "No MASTER_PLAN.md found. Set MASTER_PLAN_PATH or PROJECT_ROOT, "
            "or POST a path to /api/config/plan."
        )
    else:
        logger.info(f"Serving plan file {config.plan_path}")
    logger.info(f"Dev Maestro listening on {config.url}")

    uvicorn.run(
        create_app(holder),
        host=config.host,
        port=config.port,
        log_level=config.log_level.lower(),
        timeout_keep_alive=config.keep_alive_timeout,
    )


if __name__ == "__main__":
    run()
