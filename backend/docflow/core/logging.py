"""
Process-wide logging setup.

Called once by each entry point (Lambda handler, SQS poller). Modules only
ever do ``logger = logging.getLogger(__name__)``; per-message correlation is
added by InvocationContext.logger(), never by mutating global state.
"""

from __future__ import annotations

import logging

from docflow.core.config import settings

LOG_FORMAT = "%(asctime)s %(levelname)s %(name)s %(message)s"

_configured = False


def configure_logging(level: str | None = None) -> None:
    global _configured
    if _configured:
        return
    _configured = True

    resolved = "DEBUG" if settings.debug else (level or settings.log_level).upper()

    # The Lambda runtime pre-installs a handler on the root logger;
    # force=True replaces it so every line uses the same format.
    logging.basicConfig(level=resolved, format=LOG_FORMAT, force=True)

    # botocore is chatty at DEBUG and logs request bodies
    logging.getLogger("botocore").setLevel(logging.WARNING)
    logging.getLogger("aiobotocore").setLevel(logging.WARNING)
    logging.getLogger("httpx").setLevel(logging.WARNING)

    logging.getLogger(__name__).info(
        "Logging configured | service=%s env=%s level=%s",
        settings.service_name, settings.app_env, resolved,
    )
