"""Flask server that stays alive"""

import logging
import os
import sys

if sys.platform == "win32":
    sys.stdout.reconfigure(encoding="utf-8")

from app import create_app

logger = logging.getLogger(__name__)


def main() -> None:
    app = create_app()

    # Get host/port from environment or use defaults
    host = os.environ.get("AGROSENSE_HOST", "0.0.0.0")
    port = int(os.environ.get("FLASK_RUN_PORT", 8000))

    logger.info("Server starting on http://%s:%s", host, port)
    try:
        app.run(host=host, port=port, debug=False, use_reloader=False, threaded=True)
    except KeyboardInterrupt:
        logger.info("Server stopped by user")


if __name__ == "__main__":
    main()
