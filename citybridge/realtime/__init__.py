"""Realtime presence, messaging relay and notification delivery."""
