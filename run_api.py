# -*- coding: utf-8 -*-

"""
Entry point for the mock sensor API used by the simulation feed.
"""

import logging

from twin_ide.config import ConfigManager
from twin_ide.logging_config import setup_logging
from twin_ide.web import create_api_app


def main():
    setup_logging()

    server = ConfigManager().get_server_config()
    port = int(server.get("api_port", 5011))
    app = create_api_app()

    logging.info("API Server running on http://localhost:%s", port)
    logging.info("Available endpoints:")
    logging.info("  GET /api/data - Get all sensor data")
    logging.info("  GET /api/data/<component> - Get specific component data")
    logging.info("  POST /api/control/<component> - Update component state")

    app.run(host=server.get("host", "localhost"), port=port, use_reloader=False)


if __name__ == '__main__':
    main()
