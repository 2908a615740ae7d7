"""
Structured logging package for CityBridge.

All imports should use explicit paths like
'from citybridge.structured_logging.enhanced_logging_config import get_logger'.

The package is named 'structured_logging' rather than 'logging' so it never
shadows the standard library module.
"""

__all__: list[str] = []
