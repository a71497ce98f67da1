"""Normalized data model shared by every extractor.

Whatever the input (an OpenAPI document or a framework's source tree),
extractors convert it into a Project made of these models, and the
resolvers and generators only ever see this shape.
"""

import re
from enum import Enum
from pathlib import Path
from typing import Any, Iterator

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator


class ProjectType(str, Enum):
    OPENAPI = "openapi"
    FASTAPI = "fastapi"
    FLASK = "flask"
    DJANGO_REST = "django-rest"
    SPRING_BOOT = "spring-boot"
    ASPNET_CORE = "aspnet-core"
    UNKNOWN = "unknown"


class HttpMethod(str, Enum):
    GET = "GET"
    POST = "POST"
    PUT = "PUT"
    DELETE = "DELETE"
    PATCH = "PATCH"
    OPTIONS = "OPTIONS"
    HEAD = "HEAD"


class ParameterLocation(str, Enum):
    PATH = "path"
    QUERY = "query"
    HEADER = "header"
    COOKIE = "cookie"


class SchemaType(str, Enum):
    STRING = "string"
    NUMBER = "number"
    INTEGER = "integer"
    BOOLEAN = "boolean"
    ARRAY = "array"
    OBJECT = "object"
    NULL = "null"


class AuthType(str, Enum):
    BEARER = "bearer"
    API_KEY = "apiKey"
    BASIC = "basic"
    OAUTH2 = "oauth2"
    NONE = "none"


_DOUBLE_SLASH = re.compile(r"/{2,}")


def normalize_path(path: str) -> str:
    """Leading slash, no empty segments, no trailing slash except on root."""
    path = _DOUBLE_SLASH.sub("/", path.strip())
    if not path.startswith("/"):
        path = "/" + path
    if len(path) > 1 and path.endswith("/"):
        path = path.rstrip("/") or "/"
    return path


# Constraint fields and the schema types they are meaningful for.
_CONSTRAINT_TYPES: dict[str, tuple[SchemaType, ...]] = {
    "min_length": (SchemaType.STRING,),
    "max_length": (SchemaType.STRING,),
    "pattern": (SchemaType.STRING,),
    "minimum": (SchemaType.NUMBER, SchemaType.INTEGER),
    "maximum": (SchemaType.NUMBER, SchemaType.INTEGER),
    "properties": (SchemaType.OBJECT,),
    "required": (SchemaType.OBJECT,),
    "additional_properties": (SchemaType.OBJECT,),
    "items": (SchemaType.ARRAY,),
}


class Schema(BaseModel):
    """A (possibly recursive) JSON-Schema-like type description."""

    model_config = ConfigDict(populate_by_name=True)

    type: SchemaType | None = None
    format: str | None = None
    description: str | None = None
    properties: dict[str, "Schema"] | None = None
    required: list[str] | None = None
    items: "Schema | None" = None
    enum: list[Any] | None = None
    ref: str | None = Field(default=None, alias="$ref")  # only when not inlined
    example: Any = None
    default: Any = None
    minimum: float | None = None
    maximum: float | None = None
    min_length: int | None = None
    max_length: int | None = None
    pattern: str | None = None
    nullable: bool = False
    additional_properties: "bool | Schema | None" = None
    one_of: list["Schema"] | None = None
    any_of: list["Schema"] | None = None
    all_of: list["Schema"] | None = None

    @model_validator(mode="after")
    def _drop_mismatched_constraints(self) -> "Schema":
        if self.type is None:
            return self
        for field, types in _CONSTRAINT_TYPES.items():
            if self.type not in types and getattr(self, field) is not None:
                setattr(self, field, None)
        return self


class Parameter(BaseModel):
    """A single request parameter."""

    model_config = ConfigDict(populate_by_name=True)

    name: str
    location: ParameterLocation
    required: bool = False
    schema_: Schema = Field(default_factory=lambda: Schema(type=SchemaType.STRING), alias="schema")
    description: str | None = None
    example: Any = None
    default: Any = None
    deprecated: bool = False

    @model_validator(mode="after")
    def _path_params_are_required(self) -> "Parameter":
        if self.location == ParameterLocation.PATH:
            self.required = True
        return self


class RequestBody(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    required: bool = True
    content_type: str = "application/json"
    schema_: Schema = Field(default_factory=lambda: Schema(type=SchemaType.OBJECT), alias="schema")
    description: str | None = None
    example: Any = None


class Response(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    status_code: int
    description: str = ""
    content_type: str | None = None
    schema_: Schema | None = Field(default=None, alias="schema")
    example: Any = None
    headers: dict[str, Schema] = {}


class Endpoint(BaseModel):
    """One HTTP method on one path."""

    method: HttpMethod
    path: str  # /users/{id}
    summary: str = ""
    description: str | None = None
    operation_id: str | None = None
    tags: list[str] = []
    parameters: list[Parameter] = []
    request_body: RequestBody | None = None
    responses: list[Response] = []
    deprecated: bool = False

    @field_validator("path")
    @classmethod
    def _normalize(cls, value: str) -> str:
        return normalize_path(value)

    @field_validator("method", mode="before")
    @classmethod
    def _upper_method(cls, value: Any) -> Any:
        return value.upper() if isinstance(value, str) else value

    def params_in(self, location: ParameterLocation) -> list[Parameter]:
        return [p for p in self.parameters if p.location == location]


class Group(BaseModel):
    name: str
    description: str | None = None
    base_path: str | None = None
    endpoints: list[Endpoint] = []


class ApiInfo(BaseModel):
    title: str
    version: str = "1.0.0"
    description: str | None = None
    contact: dict[str, str] | None = None
    license: dict[str, str] | None = None
    servers: list[str] = []


class ProjectConfig(BaseModel):
    base_url: str = "http://localhost:3000"
    output_dir: str = "./apigen-output"
    generate_mock_data: bool = True
    mock_locale: str = "en"
    mock_seed: int | None = None


class Auth(BaseModel):
    """Authentication scheme applied to the whole project."""

    type: AuthType
    token_placeholder: str = "{{token}}"
    key_name: str | None = None  # header or query parameter name for apiKey
    key_location: ParameterLocation = ParameterLocation.HEADER
    username: str = "{{username}}"
    password: str = "{{password}}"
    scopes: list[str] = []
    description: str | None = None


class Project(BaseModel):
    """The normalized API surface of one project."""

    info: ApiInfo
    config: ProjectConfig = Field(default_factory=ProjectConfig)
    auth: Auth | None = None
    groups: list[Group] = []
    project_type: ProjectType
    source_path: str

    def endpoints(self) -> Iterator[Endpoint]:
        for group in self.groups:
            yield from group.endpoints

    @property
    def endpoint_count(self) -> int:
        return sum(len(g.endpoints) for g in self.groups)


class ExtractResult(BaseModel):
    """Outcome of one extraction run. Never both a project and errors."""

    success: bool
    project: Project | None = None
    errors: list[str] = []
    warnings: list[str] = []
    files_processed: int = 0
    endpoints_found: int = 0

    @classmethod
    def ok(cls, project: Project, files_processed: int = 0, warnings: list[str] | None = None) -> "ExtractResult":
        return cls(
            success=True,
            project=project,
            warnings=warnings or [],
            files_processed=files_processed,
            endpoints_found=project.endpoint_count,
        )

    @classmethod
    def failure(cls, errors: list[str], warnings: list[str] | None = None, files_processed: int = 0) -> "ExtractResult":
        return cls(success=False, errors=errors, warnings=warnings or [], files_processed=files_processed)


class DetectionResult(BaseModel):
    type: ProjectType
    confidence: int = Field(ge=0, le=100)
    reasons: list[str] = []
    spec_file: Path | None = None
    project_files: list[Path] = []
    estimated_endpoints: int | None = None
