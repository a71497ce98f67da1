"""Attach the configured authentication and render it for each generator.

Auth detected in an OpenAPI document always wins; the configured auth is
only used when the project has none.
"""

from typing import Any

import structlog

from ..config import AuthSettings
from ..extractor.base import Auth, AuthType, ParameterLocation, Project


class AuthResolver:
    def __init__(self, auth_settings: AuthSettings | None = None, logger=None):
        self.settings = auth_settings or AuthSettings()
        self.logger = logger or structlog.get_logger(__name__)

    def resolve(self, project: Project) -> Project:
        if project.auth is not None:
            self.logger.debug("auth_detected", type=project.auth.type.value)
            return project
        auth = auth_from_settings(self.settings)
        if auth is not None:
            project.auth = auth
            self.logger.debug("auth_configured", type=auth.type.value)
        return project


def auth_from_settings(settings: AuthSettings) -> Auth | None:
    """The Auth described by the config, or None for ``none``."""
    auth_type = AuthType(settings.type)
    if auth_type == AuthType.NONE:
        return None
    default = settings.token_placeholder == AuthSettings().token_placeholder
    if auth_type == AuthType.BASIC:
        return Auth(type=auth_type, token_placeholder="{{basicAuth}}" if default else settings.token_placeholder)
    if auth_type == AuthType.API_KEY:
        placeholder = "{{apiKey}}" if default else settings.token_placeholder
        return Auth(
            type=auth_type,
            token_placeholder=placeholder,
            key_name=settings.key_name,
            key_location=ParameterLocation(settings.key_location),
        )
    return Auth(type=auth_type, token_placeholder=settings.token_placeholder)


# -- rendering ----


def auth_headers(auth: Auth | None) -> dict[str, str]:
    """Request headers that carry ``auth``."""
    if auth is None or auth.type == AuthType.NONE:
        return {}
    if auth.type in (AuthType.BEARER, AuthType.OAUTH2):
        return {"Authorization": f"Bearer {auth.token_placeholder}"}
    if auth.type == AuthType.API_KEY and auth.key_location == ParameterLocation.HEADER:
        return {auth.key_name or "X-API-Key": auth.token_placeholder}
    if auth.type == AuthType.BASIC:
        return {"Authorization": f"Basic {auth.token_placeholder}"}
    return {}


def auth_query_params(auth: Auth | None) -> dict[str, str]:
    """Query parameters that carry ``auth``; only query API keys use them."""
    if auth is not None and auth.type == AuthType.API_KEY and auth.key_location == ParameterLocation.QUERY:
        return {auth.key_name or "api_key": auth.token_placeholder}
    return {}


def shell_variables(auth: Auth | None) -> dict[str, str]:
    """Environment variables a cURL script reads its credentials from."""
    if auth is None or auth.type == AuthType.NONE:
        return {}
    if auth.type == AuthType.BASIC:
        return {"USERNAME": "your-username", "PASSWORD": "your-password"}
    if auth.type == AuthType.API_KEY:
        return {"API_KEY": "your-api-key-here"}
    return {"TOKEN": "your-token-here"}


def curl_flags(auth: Auth | None) -> list[str]:
    """cURL arguments for ``auth``. Basic auth uses ``-u`` instead of a header."""
    if auth is None or auth.type == AuthType.NONE:
        return []
    if auth.type == AuthType.BASIC:
        return ['-u "${USERNAME}:${PASSWORD}"']
    if auth.type == AuthType.API_KEY:
        if auth.key_location == ParameterLocation.QUERY:
            return []
        return [f'-H "{auth.key_name or "X-API-Key"}: ${{API_KEY}}"']
    return ['-H "Authorization: Bearer ${TOKEN}"']


def curl_query(auth: Auth | None) -> dict[str, str]:
    """Query parameters a cURL script appends for a query API key."""
    if auth is not None and auth.type == AuthType.API_KEY and auth.key_location == ParameterLocation.QUERY:
        return {auth.key_name or "api_key": "${API_KEY}"}
    return {}


def postman_auth(auth: Auth | None) -> dict[str, Any] | None:
    """Collection-level ``auth`` block of a Postman v2.1 collection."""
    if auth is None or auth.type == AuthType.NONE:
        return None
    if auth.type in (AuthType.BEARER, AuthType.OAUTH2):
        return {"type": "bearer", "bearer": [{"key": "token", "value": auth.token_placeholder, "type": "string"}]}
    if auth.type == AuthType.API_KEY:
        return {
            "type": "apikey",
            "apikey": [
                {"key": "key", "value": auth.key_name or "X-API-Key", "type": "string"},
                {"key": "value", "value": auth.token_placeholder, "type": "string"},
                {"key": "in", "value": auth.key_location.value, "type": "string"},
            ],
        }
    return {
        "type": "basic",
        "basic": [
            {"key": "username", "value": auth.username, "type": "string"},
            {"key": "password", "value": auth.password, "type": "string"},
        ],
    }


def auth_variables(auth: Auth | None) -> dict[str, str]:
    """Collection variables referenced by the auth placeholders, e.g. ``token``."""
    if auth is None or auth.type == AuthType.NONE:
        return {}
    if auth.type == AuthType.BASIC:
        values = [auth.username, auth.password]
    else:
        values = [auth.token_placeholder]
    names = {}
    for value in values:
        if value.startswith("{{") and value.endswith("}}"):
            names[value[2:-2]] = ""
    return names
