"""Domain services for CityBridge."""
