"""Postman Collection v2.1 generator."""

import json
from typing import Any

from ..extractor.base import Endpoint, Group, ParameterLocation, Project
from ..resolver.auth import auth_query_params, auth_variables, postman_auth
from .base import BaseGenerator, GeneratorOptions, body_example, example_text, fallback_example

SCHEMA_URL = "https://schema.getpostman.com/json/collection/v2.1.0/collection.json"

FORM_CONTENT_TYPES = ("multipart/form-data", "application/x-www-form-urlencoded")


class PostmanGenerator(BaseGenerator):
    name = "postman"
    default_file_name = "postman_collection"

    def render(self, project: Project, options: GeneratorOptions) -> dict[str, str]:
        return {self.output_name(options, ".json"): self.dump_json(self.collection(project, options), options)}

    def collection(self, project: Project, options: GeneratorOptions) -> dict[str, Any]:
        info = {
            "name": project.info.title,
            "schema": SCHEMA_URL,
            "version": project.info.version,
        }
        if project.info.description:
            info["description"] = project.info.description

        variables = [{"key": "baseUrl", "value": project.config.base_url, "type": "string", "description": "API base URL"}]
        for key, value in auth_variables(project.auth).items():
            variables.append({"key": key, "value": value, "type": "string"})

        collection: dict[str, Any] = {
            "info": info,
            "item": [self._folder(group, project, options) for group in project.groups],
            "variable": variables,
        }
        auth = postman_auth(project.auth)
        if auth is not None:
            collection["auth"] = auth
        return collection

    def _folder(self, group: Group, project: Project, options: GeneratorOptions) -> dict[str, Any]:
        folder: dict[str, Any] = {
            "name": group.name,
            "item": [self._item(endpoint, project, options) for endpoint in group.endpoints],
        }
        if group.description:
            folder["description"] = group.description
        return folder

    def _item(self, endpoint: Endpoint, project: Project, options: GeneratorOptions) -> dict[str, Any]:
        request: dict[str, Any] = {
            "method": endpoint.method.value,
            "header": self._headers(endpoint),
            "url": self._url(endpoint, project),
        }
        if endpoint.description or endpoint.summary:
            request["description"] = endpoint.description or endpoint.summary
        if endpoint.request_body is not None:
            request["body"] = self._body(endpoint, options)

        item: dict[str, Any] = {"name": endpoint.summary or f"{endpoint.method.value} {endpoint.path}", "request": request}
        if options.include_examples:
            item["response"] = self._responses(endpoint, request)
        return item

    def _url(self, endpoint: Endpoint, project: Project) -> dict[str, Any]:
        path: list[str] = []
        variables = []
        params = {p.name: p for p in endpoint.params_in(ParameterLocation.PATH)}
        for part in endpoint.path.strip("/").split("/"):
            if not part:
                continue
            if part.startswith("{") and part.endswith("}"):
                name = part[1:-1]
                path.append(f":{name}")
                param = params.get(name)
                variable = {"key": name, "value": example_text(param.example) if param else ""}
                if param and param.description:
                    variable["description"] = param.description
                variables.append(variable)
            else:
                path.append(part)

        query = []
        for param in endpoint.params_in(ParameterLocation.QUERY):
            entry = {"key": param.name, "value": example_text(param.example), "disabled": not param.required}
            if param.description:
                entry["description"] = param.description
            query.append(entry)
        for key, value in auth_query_params(project.auth).items():
            query.append({"key": key, "value": value, "disabled": False})

        raw = "{{baseUrl}}/" + "/".join(path)
        enabled = [f"{q['key']}={q['value']}" for q in query if not q["disabled"]]
        if enabled:
            raw += "?" + "&".join(enabled)

        url: dict[str, Any] = {"raw": raw, "host": ["{{baseUrl}}"], "path": path}
        if query:
            url["query"] = query
        if variables:
            url["variable"] = variables
        return url

    def _headers(self, endpoint: Endpoint) -> list[dict[str, Any]]:
        headers = []
        body = endpoint.request_body
        if body is not None and body.content_type != "multipart/form-data":
            headers.append({"key": "Content-Type", "value": body.content_type})
        headers.append({"key": "Accept", "value": "application/json"})
        for param in endpoint.params_in(ParameterLocation.HEADER):
            header = {"key": param.name, "value": example_text(param.example)}
            if param.description:
                header["description"] = param.description
            headers.append(header)
        return headers

    def _body(self, endpoint: Endpoint, options: GeneratorOptions) -> dict[str, Any]:
        body = endpoint.request_body
        example = body_example(endpoint, options)
        if body.content_type in FORM_CONTENT_TYPES and isinstance(example, dict):
            mode = "formdata" if body.content_type == "multipart/form-data" else "urlencoded"
            fields = []
            for key, value in example.items():
                prop = (body.schema_.properties or {}).get(key)
                if prop is not None and prop.format == "binary":
                    fields.append({"key": key, "type": "file", "src": ""})
                else:
                    fields.append({"key": key, "value": example_text(value), "type": "text"})
            return {"mode": mode, mode: fields}
        return {
            "mode": "raw",
            "raw": self.dump_json(example if example is not None else {}, options),
            "options": {"raw": {"language": "json"}},
        }

    def _responses(self, endpoint: Endpoint, request: dict[str, Any]) -> list[dict[str, Any]]:
        responses = []
        for response in endpoint.responses:
            example = response.example if response.example is not None else fallback_example(response.schema_)
            entry: dict[str, Any] = {
                "name": f"{response.status_code} {response.description}".strip(),
                "originalRequest": request,
                "status": response.description,
                "code": response.status_code,
            }
            if example is not None:
                entry["body"] = json.dumps(example, indent=2, ensure_ascii=False, default=str)
                entry["_postman_previewlanguage"] = "json"
            if response.content_type:
                entry["header"] = [{"key": "Content-Type", "value": response.content_type}]
            responses.append(entry)
        return responses
