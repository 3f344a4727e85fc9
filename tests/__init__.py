"""
Test suite for the Seven Keys concierge backend.

- unit/: domain rules, tool registry, orchestrator, adapters (no network)
- api/: HTTP behaviour through FastAPI's TestClient with faked services
"""
