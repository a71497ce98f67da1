"""Markdown API reference generator."""

import json
import re
from typing import Any

from ..extractor.base import AuthType, Endpoint, Group, ParameterLocation, Project, Schema, SchemaType
from .base import BaseGenerator, GeneratorOptions, body_example, fallback_example

STATUS_TEXT = {
    400: "Bad Request",
    401: "Unauthorized",
    403: "Forbidden",
    404: "Not Found",
    422: "Validation Error",
    500: "Internal Server Error",
}


class ReadmeGenerator(BaseGenerator):
    name = "readme"
    default_file_name = "README"

    def render(self, project: Project, options: GeneratorOptions) -> dict[str, str]:
        return {self.output_name(options, ".md"): self.markdown(project, options)}

    def markdown(self, project: Project, options: GeneratorOptions) -> str:
        info = project.info
        lines = [f"# {info.title}", "", f"Version: `{info.version}`", ""]
        if info.description:
            lines += [info.description.strip(), ""]
        lines += ["## Base URL", "", "```", project.config.base_url, "```", ""]
        if len(info.servers) > 1:
            lines += ["Other servers:", ""]
            lines += [f"- `{server}`" for server in info.servers[1:]]
            lines.append("")
        lines += _auth_section(project)

        lines += ["## Endpoints", ""]
        for group in project.groups:
            lines.append(f"- [{group.name}](#{_anchor(group.name)}) ({len(group.endpoints)})")
        lines.append("")

        for group in project.groups:
            lines += self._group(group, options)

        used = sorted({r.status_code for e in project.endpoints() for r in e.responses if r.status_code in STATUS_TEXT})
        if used:
            lines += ["## Error Codes", "", "| Code | Description |", "|------|-------------|"]
            lines += [f"| {code} | {STATUS_TEXT[code]} |" for code in used]
            lines.append("")
        lines += ["---", "", f"Generated by apigen from a {project.project_type.value} project."]
        return "\n".join(lines) + "\n"

    def _group(self, group: Group, options: GeneratorOptions) -> list[str]:
        lines = [f"## {group.name}", ""]
        if group.description:
            lines += [group.description.strip(), ""]
        lines += ["| Method | Path | Summary |", "|--------|------|---------|"]
        for endpoint in group.endpoints:
            lines.append(f"| **{endpoint.method.value}** | `{endpoint.path}` | {_cell(endpoint.summary)} |")
        lines.append("")
        for endpoint in group.endpoints:
            lines += self._endpoint(endpoint, options)
        return lines

    def _endpoint(self, endpoint: Endpoint, options: GeneratorOptions) -> list[str]:
        lines = [f"### {endpoint.method.value} {endpoint.path}", ""]
        if endpoint.summary:
            lines += [endpoint.summary, ""]
        if endpoint.description and endpoint.description != endpoint.summary:
            lines += [endpoint.description.strip(), ""]
        if endpoint.deprecated:
            lines += ["> **Deprecated.**", ""]

        if endpoint.parameters:
            lines += [
                "**Parameters**",
                "",
                "| Name | In | Type | Required | Description |",
                "|------|----|------|----------|-------------|",
            ]
            for param in endpoint.parameters:
                required = "yes" if param.required or param.location == ParameterLocation.PATH else "no"
                lines.append(
                    f"| `{param.name}` | {param.location.value} | {type_label(param.schema_)} | {required} | {_cell(param.description)} |"
                )
            lines.append("")

        body = endpoint.request_body
        if body is not None:
            lines += ["**Request body**", "", f"Content-Type: `{body.content_type}`", ""]
            if body.description:
                lines += [body.description.strip(), ""]
            if options.include_examples:
                lines += _json_block(body_example(endpoint, options))

        if endpoint.responses:
            lines += ["**Responses**", ""]
            for response in endpoint.responses:
                lines.append(f"- **{response.status_code}** {response.description}".rstrip())
                if options.include_examples and response.schema_ is not None:
                    example = response.example if response.example is not None else fallback_example(response.schema_)
                    lines += [""] + _json_block(example, indent="  ")
            lines.append("")
        return lines


def type_label(schema: Schema | None) -> str:
    """Short human label like ``string(uuid)`` or ``array<User>``."""
    if schema is None:
        return "-"
    if schema.ref:
        return schema.ref.rsplit("/", 1)[-1]
    if schema.type == SchemaType.ARRAY:
        return f"array<{type_label(schema.items)}>"
    if schema.enum:
        return "enum(" + ", ".join(str(v) for v in schema.enum[:5]) + (", ..." if len(schema.enum) > 5 else "") + ")"
    if schema.type is None:
        return "any"
    return f"{schema.type.value}({schema.format})" if schema.format else schema.type.value


def _auth_section(project: Project) -> list[str]:
    auth = project.auth
    if auth is None or auth.type == AuthType.NONE:
        return []
    lines = ["## Authentication", ""]
    if auth.type == AuthType.API_KEY:
        lines.append("This API uses an **API key**.")
        example = (
            f"?{auth.key_name}=<your-api-key>"
            if auth.key_location == ParameterLocation.QUERY
            else f"{auth.key_name or 'X-API-Key'}: <your-api-key>"
        )
    elif auth.type == AuthType.BASIC:
        lines.append("This API uses **HTTP Basic** authentication.")
        example = "Authorization: Basic <base64(username:password)>"
    else:
        kind = "OAuth2 bearer tokens" if auth.type == AuthType.OAUTH2 else "**Bearer** tokens"
        lines.append(f"This API uses {kind}.")
        example = "Authorization: Bearer <your-token>"
    lines += ["", "```", example, "```", ""]
    if auth.scopes:
        lines += ["Scopes: " + ", ".join(f"`{s}`" for s in auth.scopes), ""]
    if auth.description:
        lines += [auth.description.strip(), ""]
    return lines


def _json_block(value: Any, indent: str = "") -> list[str]:
    text = json.dumps(value if value is not None else {}, indent=2, ensure_ascii=False, default=str)
    return [f"{indent}```json", *(f"{indent}{line}" for line in text.splitlines()), f"{indent}```", ""]


def _cell(text: str | None) -> str:
    if not text:
        return ""
    return " ".join(text.split()).replace("|", "\\|")


def _anchor(title: str) -> str:
    return re.sub(r"[^\w\- ]", "", title.lower()).strip().replace(" ", "-")
