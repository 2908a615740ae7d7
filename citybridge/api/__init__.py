"""HTTP and WebSocket routers for the CityBridge API."""
