import sys

import uvicorn

from note_proxy.config_loader import load_settings
from note_proxy.logger import configure_logging, get_logger
from note_proxy.server import build_app

logger = get_logger("NoteProxyMain")


if __name__ == "__main__":
    settings = load_settings()
    configure_logging(settings.log_level)

    # Refuse to serve unauthenticated webhooks
    try:
        app = build_app(settings)
    except RuntimeError as exc:
        logger.error("%s", exc)
        sys.exit(1)

    uvicorn.run(app, host=settings.host, port=settings.port)
