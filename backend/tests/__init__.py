"""
Pytest test suite for the Order Lifecycle Service.

Test categories:
- Unit tests: transition table and pure helpers
- Integration tests: services against in-memory SQLite
- API tests: FastAPI routes through httpx's ASGI transport
"""
