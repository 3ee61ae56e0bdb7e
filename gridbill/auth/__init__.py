"""
Authentication package.

Exports the BearerAuth dependency class and token parsing utilities
for use by FastAPI route handlers.

CHANGELOG:
- 2026-10-16: Initial creation (STORY-028)

TODO:
- None
"""

from gridbill.auth.bearer import BearerAuth, parse_meter_tokens, verify_bearer_token

__all__ = ["BearerAuth", "parse_meter_tokens", "verify_bearer_token"]
