"""
CityBridge realtime server.

Presence tracking, direct messaging relay and notification delivery for the
CityBridge cultural exchange API.
"""

__version__ = "0.1.0"
