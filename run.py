"""Server entry point."""

import logging
import os

from paste.translogger import TransLogger  # type: ignore[import-untyped]
from waitress import serve

from auth_okta import create_app
from auth_okta.config import Settings


def main() -> None:
    settings = Settings.load()

    logging.basicConfig(
        level=settings.log_level.upper(),
        format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
    )

    app = create_app(settings)

    host = os.getenv("HOST", "0.0.0.0")
    port = int(os.getenv("PORT", 6201))

    if settings.flask_env in ("development", "testing"):
        app.logger.info("Running in debug mode")
        app.run(host=host, port=port, debug=settings.debug)
    else:
        wsgi = TransLogger(app, setup_console_handler=False)
        threads = int(os.getenv("WAITRESS_THREADS", 50))
        wsgi.logger.info(f"Using Waitress WSGI server with {threads} threads")
        serve(wsgi, host=host, port=port, threads=threads)


if __name__ == "__main__":
    main()
