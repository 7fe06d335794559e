from __future__ import annotations

import logging
import os
import sys

from gitwatch_sync import __version__
from gitwatch_sync.config import load_context
from gitwatch_sync.errors import ConfigurationError
from gitwatch_sync.service import PreflightService


def main() -> int:
    try:
        context = load_context()
    except ConfigurationError as exc:
        logging.basicConfig(level=logging.ERROR)
        logging.getLogger(__name__).error("%s", exc)
        return exc.exit_code
    log_level_map = {
        "debug": logging.DEBUG,
        "info": logging.INFO,
        "warning": logging.WARNING,
        "error": logging.ERROR,
    }
    logging.basicConfig(
        level=log_level_map.get(context.log_level.lower(), logging.INFO),
        format="%(asctime)s | %(levelname)s | %(name)s | %(message)s",
    )

    logger = logging.getLogger(__name__)
    build_version = os.getenv("GITWATCH_BUILD_VERSION", "dev")
    logger.info(
        "gitwatch pre-flight starting | version=%s | build=%s | remote=%s | branch=%s",
        __version__,
        build_version,
        context.remote,
        context.branch,
    )
    logger.debug("Resolved configuration: %s", context.public_config())
    return PreflightService(context).run()


if __name__ == "__main__":
    sys.exit(main())
