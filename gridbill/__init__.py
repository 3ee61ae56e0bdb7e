"""
gridbill: tariff billing and usage insights for three-phase energy meters.

Pure billing and insights engines live in ``gridbill.services``; the FastAPI
application in ``gridbill.api.main`` reads meter telemetry from TimescaleDB
and serves both over HTTP.

CHANGELOG:
- 2026-10-12: Initial creation (STORY-021)

TODO:
- None
"""
