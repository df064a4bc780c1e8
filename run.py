# -*- coding: utf-8 -*-

"""
Main entry point for launching the Digital Twin Interactions IDE server.
"""

import logging

from twin_ide.config import ConfigManager
from twin_ide.logging_config import setup_logging
from twin_ide.web import create_app


def main():
    """
    Configure logging, build the IDE application and serve it.
    """
    setup_logging()

    server = ConfigManager().get_server_config()
    app = create_app()

    host = server.get("host", "localhost")
    port = int(server.get("port", 6000))
    logging.info("%s server running on http://%s:%s", server.get("app_name"), host, port)
    if server.get("debug"):
        logging.info("Debug mode: enabled")
        logging.info("Environment: %s", server.get("environment"))

    try:
        app.run(host=host, port=port, debug=bool(server.get("debug")), use_reloader=False)
    finally:
        app.extensions["twin_ide"]["session"].close()


if __name__ == '__main__':
    main()

    logging.info("===== Application terminated =====")
