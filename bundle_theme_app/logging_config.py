from __future__ import annotations

import logging

from bundle_theme_app.config import settings

_LOG_FORMAT = "%(asctime)s %(levelname)s %(name)s %(message)s"


def configure_logging() -> None:
    root = logging.getLogger()
    if not root.handlers:
        logging.basicConfig(format=_LOG_FORMAT)
    logging.getLogger("bundle_theme_app").setLevel(settings.LOG_LEVEL)
