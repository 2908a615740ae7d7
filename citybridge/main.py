"""
CityBridge server entry point.

    uvicorn citybridge.main:app

Logging is configured before the app is built so startup messages reach the
configured handlers.
"""

from .app.factory import create_app
from .config import get_config
from .structured_logging.enhanced_logging_config import get_logger, setup_enhanced_logging

config = get_config()
setup_enhanced_logging(config.to_logging_dict())

logger = get_logger(__name__)
logger.info("Logging setup completed", environment=config.logging.environment)

app = create_app(config)
