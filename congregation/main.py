"""Congregation Hub API - ASGI entry point"""

import logging

from .application import create_app

# Configure logging
logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s - %(name)s - %(levelname)s - %(message)s"
)

app = create_app()
