"""OpenAPI customization utilities.

Provides a helper to enrich the generated OpenAPI schema with:
- Tags metadata
- A shared error schema
- 429 / 503 responses on every versioned (``/v1``) operation, since those are
  the routes that may carry a rate limit policy

This keeps documentation concerns decoupled from the app factory.
"""

from __future__ import annotations

from typing import Any, Dict

from fastapi import FastAPI

_ERROR_SCHEMA: Dict[str, Any] = {
    "type": "object",
    "properties": {
        "error": {
            "type": "object",
            "properties": {
                "code": {"type": "string"},
                "message": {"type": "string"},
                "request_id": {"type": "string", "nullable": True},
                "details": {"type": "object"},
            },
            "required": ["code", "message"],
        }
    },
}

_THROTTLE_HEADERS: Dict[str, Any] = {
    "Retry-After": {"schema": {"type": "integer"}, "description": "Seconds until the window resets."},
    "X-RateLimit-Limit": {"schema": {"type": "integer"}, "description": "Calls allowed per window."},
    "X-RateLimit-Remaining": {"schema": {"type": "integer"}, "description": "Calls left in the window."},
    "X-RateLimit-Reset": {"schema": {"type": "integer"}, "description": "Seconds until the window resets."},
}


def apply_openapi_customizations(app: FastAPI) -> None:
    """Patch FastAPI's OpenAPI generation to document throttling responses."""

    original_openapi = app.openapi

    def custom_openapi() -> Dict[str, Any]:
        if app.openapi_schema:
            return app.openapi_schema

        schema = original_openapi()

        components = schema.setdefault("components", {})
        components.setdefault("schemas", {}).setdefault("ErrorResponse", _ERROR_SCHEMA)
        error_ref = {"application/json": {"schema": {"$ref": "#/components/schemas/ErrorResponse"}}}

        tags = schema.setdefault("tags", [])
        existing_tag_names = {t.get("name") for t in tags}
        for tag in (
            {"name": "Demo", "description": "Endpoints protected by rate limit policies."},
            {"name": "Health", "description": "Liveness and readiness checks."},
        ):
            if tag["name"] not in existing_tag_names:
                tags.append(tag)

        for path, methods in schema.get("paths", {}).items():
            if not path.startswith("/v1/"):
                continue
            for method_obj in methods.values():
                if not isinstance(method_obj, dict):
                    continue
                responses = method_obj.setdefault("responses", {})
                responses.setdefault(
                    "429",
                    {"description": "Rate limit exceeded", "headers": _THROTTLE_HEADERS, "content": error_ref},
                )
                responses.setdefault(
                    "503",
                    {"description": "Rate limit store unavailable", "content": error_ref},
                )

        app.openapi_schema = schema
        return schema

    app.openapi = custom_openapi  # type: ignore[assignment]
