#!/usr/bin/env python3
"""Entry point for the reelpipe service."""

import os
import logging
import eventlet

# Job threads and the progress listener must be green under the SocketIO server
eventlet.monkey_patch()

from reelpipe.app import main  # noqa
from reelpipe.config import load_config  # noqa

if __name__ == "__main__":
    log_level = os.environ.get("LOG_LEVEL", load_config().log_level).upper()
    logging.basicConfig(
        level=getattr(logging, log_level),
        format="[%(levelname)s] %(asctime)s | %(name)s | %(message)s",
        datefmt="%Y-%m-%d %H:%M:%S",
    )
    main()
