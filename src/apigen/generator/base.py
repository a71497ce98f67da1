"""Generator base class, options and result models.

A generator renders a Project into ``{relative_path: content}``. The base
class validates the rendered files and writes them under the output
directory; subclasses only implement ``render``.
"""

import json
import os
import re
from abc import ABC, abstractmethod
from pathlib import Path
from typing import Any

import structlog
from pydantic import BaseModel

from ..extractor.base import Endpoint, Project, Schema, SchemaType
from .validator import validate_files


class GeneratorOptions(BaseModel):
    output_dir: Path
    file_name: str | None = None
    overwrite: bool = True
    pretty_print: bool = True
    include_examples: bool = True


class GeneratorResult(BaseModel):
    success: bool
    files: list[Path] = []
    errors: list[str] = []
    warnings: list[str] = []


class BaseGenerator(ABC):
    name: str = "base"
    default_file_name: str = ""
    executable_suffixes: tuple[str, ...] = ()

    def __init__(self, logger=None):
        self.logger = (logger or structlog.get_logger(__name__)).bind(generator=self.name)

    @abstractmethod
    def render(self, project: Project, options: GeneratorOptions) -> dict[str, str]:
        """Rendered files keyed by path relative to the output directory."""

    def generate(self, project: Project, options: GeneratorOptions) -> GeneratorResult:
        try:
            files = self.render(project, options)
        except (TypeError, ValueError) as e:
            self.logger.error("render_failed", error=str(e))
            return GeneratorResult(success=False, errors=[f"{self.name}: {e}"])

        invalid = validate_files(files)
        if invalid:
            errors = [f"{name}: {message}" for name, message in invalid.items()]
            self.logger.error("validation_failed", files=list(invalid))
            return GeneratorResult(success=False, errors=errors)

        written: list[Path] = []
        warnings: list[str] = []
        for rel, content in files.items():
            path = options.output_dir / rel
            if path.exists() and not options.overwrite:
                warnings.append(f"{path} exists, skipped")
                continue
            try:
                path.parent.mkdir(parents=True, exist_ok=True)
                path.write_text(content, encoding="utf-8")
                if path.suffix in self.executable_suffixes:
                    os.chmod(path, 0o755)
            except OSError as e:
                self.logger.error("write_failed", path=str(path), error=str(e))
                return GeneratorResult(success=False, files=written, errors=[f"Cannot write {path}: {e}"], warnings=warnings)
            written.append(path)

        self.logger.debug("generated", files=len(written))
        return GeneratorResult(success=True, files=written, warnings=warnings)

    def output_name(self, options: GeneratorOptions, extension: str) -> str:
        return f"{options.file_name or self.default_file_name}{extension}"

    def dump_json(self, data: Any, options: GeneratorOptions) -> str:
        indent = 2 if options.pretty_print else None
        return json.dumps(data, indent=indent, ensure_ascii=False, default=str)


# -- shared helpers ----


def fallback_example(schema: Schema | None, depth: int = 0) -> Any:
    """Plain example for a schema the resolvers did not fill."""
    if schema is None:
        return None
    if schema.example is not None:
        return schema.example
    if schema.default is not None:
        return schema.default
    if schema.enum:
        return schema.enum[0]
    if schema.type == SchemaType.ARRAY:
        return [fallback_example(schema.items, depth + 1)] if schema.items and depth < 6 else []
    if schema.type == SchemaType.OBJECT or schema.properties:
        if depth >= 6:
            return {}
        return {name: fallback_example(prop, depth + 1) for name, prop in (schema.properties or {}).items()}
    if schema.type == SchemaType.INTEGER:
        return 1
    if schema.type == SchemaType.NUMBER:
        return 1.5
    if schema.type == SchemaType.BOOLEAN:
        return True
    if schema.type == SchemaType.NULL:
        return None
    return "string"


def body_example(endpoint: Endpoint, options: GeneratorOptions) -> Any:
    body = endpoint.request_body
    if body is None:
        return None
    if body.example is not None:
        return body.example
    if options.include_examples:
        return fallback_example(body.schema_)
    return {}


def example_text(value: Any) -> str:
    if value is None:
        return ""
    if isinstance(value, bool):
        return "true" if value else "false"
    if isinstance(value, (dict, list)):
        return json.dumps(value, default=str)
    return str(value)


def slugify(name: str) -> str:
    slug = re.sub(r"[^a-z0-9]+", "-", name.lower()).strip("-")
    return slug or "default"
