"""Async persistence layer for CityBridge."""
