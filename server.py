"""WSGI entry point.

``server:app`` can be handed to any WSGI server; running this module
directly starts the built-in threaded server with graceful shutdown.
"""

from __future__ import annotations

import os
import sys

from dotenv import load_dotenv

load_dotenv()

from core.config import load_config
from core.log_setup import configure_logging
from web.app import create_app
from web.lifecycle import ServerLifecycle

config = load_config(os.environ)
configure_logging(config.log_level, config.environment)
app = create_app(config)


def main() -> int:
    return ServerLifecycle(app, config).run()


if __name__ == "__main__":
    sys.exit(main())
