"""HTTP middleware and request-path guards."""
