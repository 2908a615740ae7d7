"""Shared helpers for the CityBridge server."""
