"""Pydantic schemas for the CityBridge HTTP and realtime surfaces."""
