"""Bearer token issuance, verification and FastAPI auth dependencies."""
