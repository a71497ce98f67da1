"""cURL script generator: one executable ``curl/<group>.sh`` per group."""

import json
import re
from urllib.parse import quote

from ..extractor.base import Endpoint, Group, ParameterLocation, Project
from ..resolver.auth import curl_flags, curl_query, shell_variables
from .base import BaseGenerator, GeneratorOptions, body_example, example_text, slugify

BODY_METHODS = {"POST", "PUT", "PATCH", "DELETE"}


class CurlGenerator(BaseGenerator):
    name = "curl"
    default_file_name = "curl"
    executable_suffixes = (".sh",)

    def render(self, project: Project, options: GeneratorOptions) -> dict[str, str]:
        directory = options.file_name or self.default_file_name
        files: dict[str, str] = {}
        scripts: list[str] = []
        for group in project.groups:
            name = f"{slugify(group.name)}.sh"
            while f"{directory}/{name}" in files:
                name = f"{name[:-3]}-{len(scripts)}.sh"
            files[f"{directory}/{name}"] = self.group_script(group, project, options)
            scripts.append(name)
        files[f"{directory}/all-requests.sh"] = self._all_script(project, scripts)
        return files

    def group_script(self, group: Group, project: Project, options: GeneratorOptions) -> str:
        lines = [
            "#!/usr/bin/env bash",
            f"# {_one_line(project.info.title)}: {group.name}",
        ]
        if group.description:
            lines.append(f"# {_one_line(group.description)}")
        lines.append("")
        lines.extend(_environment(project))
        lines.append("")
        for endpoint in group.endpoints:
            lines.extend(self._request(endpoint, project, options))
            lines.append("")
        return "\n".join(lines)

    def command(self, endpoint: Endpoint, project: Project, options: GeneratorOptions) -> str:
        parts = ["curl -sS", f"-X {endpoint.method.value}", f'"{_url(endpoint, project)}"']

        body = endpoint.request_body
        if body is not None and body.content_type != "multipart/form-data":
            parts.append(f'-H "Content-Type: {body.content_type}"')
        parts.append('-H "Accept: application/json"')
        parts.extend(curl_flags(project.auth))
        for param in endpoint.params_in(ParameterLocation.HEADER):
            parts.append(f'-H "{param.name}: {_dq(example_text(param.example))}"')
        for param in endpoint.params_in(ParameterLocation.COOKIE):
            parts.append(f'-b "{param.name}={_dq(example_text(param.example))}"')

        if body is not None and endpoint.method.value in BODY_METHODS:
            example = body_example(endpoint, options)
            if body.content_type == "multipart/form-data" and isinstance(example, dict):
                for key, value in example.items():
                    prop = (body.schema_.properties or {}).get(key)
                    if prop is not None and prop.format == "binary":
                        parts.append(f'-F "{key}=@./{key}"')
                    else:
                        parts.append(f'-F "{key}={_dq(example_text(value))}"')
            elif example is not None:
                parts.append(f"-d '{_sq(json.dumps(example, ensure_ascii=False, default=str))}'")
        return " \\\n  ".join(parts)

    def _request(self, endpoint: Endpoint, project: Project, options: GeneratorOptions) -> list[str]:
        lines = [f"# {_one_line(endpoint.summary or endpoint.path)}"]
        if endpoint.deprecated:
            lines.append("# Deprecated")
        lines.append(f'echo ">>> {endpoint.method.value} {_dq(endpoint.path)}"')
        lines.append(self.command(endpoint, project, options))
        lines.append('echo ""')
        return lines

    def _all_script(self, project: Project, scripts: list[str]) -> str:
        lines = [
            "#!/usr/bin/env bash",
            f"# {_one_line(project.info.title)} {project.info.version}: every request",
            "",
            'DIR="$(cd "$(dirname "${BASH_SOURCE[0]}")" && pwd)"',
            "",
        ]
        lines.extend(f"export {line}" for line in _environment(project))
        lines.append("")
        for script in scripts:
            lines.append(f'bash "$DIR/{script}"')
        return "\n".join(lines) + "\n"


def _environment(project: Project) -> list[str]:
    lines = [f'BASE_URL="${{BASE_URL:-{_dq(project.config.base_url.rstrip("/"))}}}"']
    for name, default in shell_variables(project.auth).items():
        lines.append(f'{name}="${{{name}:-{default}}}"')
    return lines


def _url(endpoint: Endpoint, project: Project) -> str:
    path = _dq(endpoint.path)
    for param in endpoint.params_in(ParameterLocation.PATH):
        value = quote(example_text(param.example) or param.name, safe="")
        path = path.replace(f"{{{param.name}}}", f"${{{_variable(param.name)}:-{value}}}")

    query = [
        f"{quote(p.name, safe='')}={quote(example_text(p.example), safe='')}"
        for p in endpoint.params_in(ParameterLocation.QUERY)
        if p.required or p.example is not None
    ]
    query += [f"{quote(key, safe='')}={value}" for key, value in curl_query(project.auth).items()]
    url = "${BASE_URL}" + path
    if query:
        url += "?" + "&".join(query)
    return url


def _variable(name: str) -> str:
    var = re.sub(r"(?<=[a-z0-9])([A-Z])", r"_\1", name)
    var = re.sub(r"\W", "_", var).upper()
    return var if var[:1].isalpha() else f"P_{var}"


def _dq(text: str) -> str:
    """Escape text for use inside a double-quoted shell string."""
    return re.sub(r'(["\\$`])', r"\\\1", text)


def _sq(text: str) -> str:
    """Escape text for use inside a single-quoted shell string."""
    return text.replace("'", "'\"'\"'")


def _one_line(text: str) -> str:
    return " ".join(text.split())
