"""OpenAPI customization utilities.

Enriches the generated OpenAPI schema with:
- Bearer security scheme for caller API keys (``Authorization`` header)
- Admin key scheme (``X-Admin-Key``) for key management operations
- Tags metadata and per-path security overrides

This keeps documentation concerns decoupled from the app factory.
"""

from __future__ import annotations

from typing import Any, Dict

from fastapi import FastAPI

_TAGS = [
    {
        "name": "Summarizer",
        "description": "Metered GitHub README summarization.",
    },
    {
        "name": "Keys",
        "description": "API key validation and management.",
    },
    {
        "name": "Health",
        "description": "Liveness and key store connectivity checks.",
    },
]


def apply_openapi_customizations(app: FastAPI) -> None:
    """Patch FastAPI's OpenAPI generation to add metadata and security.

    - Declares ``BearerAuth`` (caller keys) and ``AdminKeyAuth`` schemes
    - Requires BearerAuth by default
    - Key management paths require AdminKeyAuth instead; the validation
      endpoint and health endpoints require nothing
    """

    original_openapi = app.openapi

    def custom_openapi() -> Dict[str, Any]:
        if app.openapi_schema:
            return app.openapi_schema

        schema = original_openapi()

        components = schema.setdefault("components", {})
        security_schemes = components.setdefault("securitySchemes", {})
        security_schemes.setdefault(
            "BearerAuth",
            {
                "type": "http",
                "scheme": "bearer",
                "description": "Provide your API key as: Authorization: Bearer <your-api-key>.",
            },
        )
        security_schemes.setdefault(
            "AdminKeyAuth",
            {
                "type": "apiKey",
                "in": "header",
                "name": "X-Admin-Key",
                "description": "Admin key for key management endpoints.",
            },
        )

        schema.setdefault("security", [{"BearerAuth": []}])

        tags = schema.setdefault("tags", [])
        existing_tag_names = {t.get("name") for t in tags}
        for tag in _TAGS:
            if tag["name"] not in existing_tag_names:
                tags.append(tag)

        for path, methods in schema.get("paths", {}).items():
            if "/health" in path or path.endswith("/keys/validate"):
                security: list[dict[str, list[str]]] = []
            elif "/keys" in path:
                security = [{"AdminKeyAuth": []}]
            else:
                continue
            for method_obj in methods.values():
                if isinstance(method_obj, dict):
                    method_obj["security"] = security

        app.openapi_schema = schema
        return schema

    app.openapi = custom_openapi  # type: ignore[assignment]
