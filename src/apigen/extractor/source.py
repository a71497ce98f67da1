"""Extractor base classes.

BaseExtractor is the contract every extractor honors. SourceExtractor is
the two-pass template shared by the framework extractors: pass one builds a
ScanContext (routers, models, views, registrations) from every file, pass
two turns each file's route declarations into RouteInfo records using that
context, and the template converts and groups them.
"""

from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any

import structlog

from .base import (
    ApiInfo,
    Auth,
    Endpoint,
    ExtractResult,
    Group,
    HttpMethod,
    Project,
    ProjectConfig,
    ProjectType,
    Schema,
    SchemaType,
)
from .helpers import find_source_files, group_endpoints, read_source

# Errors a misbehaving pattern can raise on odd input; the file is skipped.
_SCAN_ERRORS = (ValueError, IndexError, KeyError, TypeError, AttributeError, RecursionError)


class BaseExtractor(ABC):
    """Turns one source (a directory or a spec document) into a Project."""

    project_type: ProjectType = ProjectType.UNKNOWN
    name: str = "base"

    def __init__(self, config: ProjectConfig | None = None, logger=None):
        self.config = config or ProjectConfig()
        self.logger = (logger or structlog.get_logger(__name__)).bind(extractor=self.name)

    @abstractmethod
    def extract(self, source: str | Path) -> ExtractResult:
        ...

    def create_project(
        self,
        info: ApiInfo,
        groups: list[Group],
        source: str | Path,
        auth: Auth | None = None,
        base_url: str | None = None,
    ) -> Project:
        config = self.config.model_copy()
        if base_url:
            config.base_url = base_url
        return Project(
            info=info,
            config=config,
            auth=auth,
            groups=groups,
            project_type=self.project_type,
            source_path=str(source),
        )


# -- scan context ---------------------------------------------------------


@dataclass
class ModelField:
    name: str
    type_name: str
    required: bool = True
    default: str | None = None
    description: str | None = None


@dataclass
class ModelInfo:
    """A data class found in source: Pydantic model, serializer, DTO."""

    name: str
    fields: list[ModelField] = field(default_factory=list)
    bases: list[str] = field(default_factory=list)
    file: Path | None = None
    meta: dict[str, Any] = field(default_factory=dict)


@dataclass
class RouterInfo:
    """A router / blueprint variable and the prefix it contributes."""

    var: str
    file: Path
    prefix: str = ""
    name: str | None = None
    tags: list[str] = field(default_factory=list)
    parent: str | None = None  # key of the router this one is mounted on
    mount_prefix: str = ""


@dataclass
class ViewInfo:
    """A class that handles requests: controller, ViewSet, MethodView."""

    name: str
    file: Path
    bases: list[str] = field(default_factory=list)
    methods: list[str] = field(default_factory=list)  # method names defined in the body
    attributes: dict[str, str] = field(default_factory=dict)
    body: str = ""
    base_path: str = ""


@dataclass
class Registration:
    """A view mounted under a path: router.register, add_url_rule, path()."""

    prefix: str
    view: str
    file: Path
    router: str | None = None
    methods: list[str] = field(default_factory=list)


@dataclass
class RouteInfo:
    method: HttpMethod
    path: str
    handler: str
    file: Path
    signature: str = ""  # raw parameter list of the handler
    body: str = ""  # handler body text
    group: str | None = None
    summary: str = ""
    tags: list[str] = field(default_factory=list)
    deprecated: bool = False
    status_code: int | None = None
    response_type: str | None = None
    extra: dict[str, Any] = field(default_factory=dict)


@dataclass
class ScanContext:
    """Everything pass one learned about the project; read by pass two."""

    root: Path
    routers: dict[str, RouterInfo] = field(default_factory=dict)
    models: dict[str, ModelInfo] = field(default_factory=dict)
    views: dict[str, ViewInfo] = field(default_factory=dict)
    registrations: list[Registration] = field(default_factory=list)
    url_paths: dict[str, tuple[str, Path]] = field(default_factory=dict)  # view name -> (route, declaring file)
    mounts: dict[str, tuple[str, Path]] = field(default_factory=dict)  # include target -> (prefix, including file)
    imports: dict[Path, dict[str, tuple[str, str]]] = field(default_factory=dict)  # local name -> (module, name)


# -- template -------------------------------------------------------------


class SourceExtractor(BaseExtractor):
    """Two-pass, regex-level extraction over a framework's source files."""

    display_name: str = "Source"
    extensions: tuple[str, ...] = ()
    extra_ignored: tuple[str, ...] = ()
    searched_patterns: tuple[str, ...] = ()
    type_map: dict[str, SchemaType] = {}
    max_depth: int | None = None

    def extract(self, source: str | Path) -> ExtractResult:
        root = Path(source)
        if not root.exists():
            return ExtractResult.failure([f"Source path does not exist: {root}"])

        files = find_source_files(root, self.extensions, self.extra_ignored, self.max_depth)
        if not files:
            return ExtractResult.failure([
                f"No {'/'.join(self.extensions)} files found in {root}",
                f"Expected a {self.display_name} project; use -f to pick another framework.",
            ])

        sources = self._read_all(files)
        ctx = ScanContext(root=root if root.is_dir() else root.parent)

        for path, text in sources.items():
            try:
                self.scan_file(path, text, ctx)
            except _SCAN_ERRORS as e:
                self.logger.debug("scan_failed", path=str(path), error=str(e))

        self.after_scan(ctx)

        routes: list[RouteInfo] = []
        for path, text in sources.items():
            try:
                routes.extend(self.extract_routes(path, text, ctx))
            except _SCAN_ERRORS as e:
                self.logger.debug("route_scan_failed", path=str(path), error=str(e))
        routes.extend(self.finalize_routes(ctx))

        if not routes:
            return ExtractResult.failure(
                [
                    f"No {self.display_name} routes found in {len(sources)} file(s) under {root}",
                    "Searched for: " + ", ".join(self.searched_patterns),
                ],
                files_processed=len(sources),
            )

        pairs = []
        for route in routes:
            try:
                endpoint = self.route_to_endpoint(route, ctx)
            except _SCAN_ERRORS as e:
                self.logger.debug("route_skipped", handler=route.handler, path=route.path, error=str(e))
                continue
            pairs.append((self.group_name(route, ctx), endpoint))
        if not pairs:
            return ExtractResult.failure(
                [f"{len(routes)} {self.display_name} route(s) found but none could be converted"],
                files_processed=len(sources),
            )

        info = ApiInfo(title=self.project_title(ctx.root), description=f"Extracted from {self.display_name} source")
        project = self.create_project(info, group_endpoints(pairs), root)
        self.logger.info("extracted", files=len(sources), endpoints=project.endpoint_count)
        return ExtractResult.ok(
            project,
            files_processed=len(sources),
            warnings=[f"{self.display_name} extraction is best-effort; some endpoints may be missed."],
        )

    def _read_all(self, files: list[Path]) -> dict[Path, str]:
        sources = {}
        for path in files:
            try:
                sources[path] = read_source(path)
            except (OSError, UnicodeDecodeError) as e:
                self.logger.debug("read_failed", path=str(path), error=str(e))
        return sources

    # -- hooks ----

    def scan_file(self, path: Path, text: str, ctx: ScanContext) -> None:
        """Pass one: record routers, models and views in ``ctx``."""

    def after_scan(self, ctx: ScanContext) -> None:
        """Hook between the passes, once every file was scanned."""

    @abstractmethod
    def extract_routes(self, path: Path, text: str, ctx: ScanContext) -> list[RouteInfo]:
        """Pass two: route declarations found in one file."""

    def finalize_routes(self, ctx: ScanContext) -> list[RouteInfo]:
        """Routes that only exist once every file was seen (registrations)."""
        return []

    @abstractmethod
    def route_to_endpoint(self, route: RouteInfo, ctx: ScanContext) -> Endpoint:
        ...

    def group_name(self, route: RouteInfo, ctx: ScanContext) -> str:
        return route.group or "Default"

    def project_title(self, root: Path) -> str:
        return root.resolve().name or "API"

    # -- schemas ----

    def type_schema(self, type_name: str, ctx: ScanContext, seen: frozenset[str] = frozenset()) -> Schema:
        """Map a source type name to a Schema; models become object schemas."""
        type_name = type_name.strip()
        mapped = self.type_map.get(type_name) or self.type_map.get(type_name.lower())
        if mapped is not None:
            return Schema(type=mapped)
        if type_name in ctx.models:
            return self.model_schema(type_name, ctx, seen)
        return Schema(type=SchemaType.STRING)

    def model_schema(self, name: str, ctx: ScanContext, seen: frozenset[str] = frozenset()) -> Schema:
        if name in seen:
            return Schema(type=SchemaType.OBJECT, ref=f"#/components/schemas/{name}")
        model = ctx.models[name]
        seen = seen | {name}
        properties = {}
        required = []
        for f in self.model_fields(model, ctx):
            properties[f.name] = self.type_schema(f.type_name, ctx, seen)
            if f.description:
                properties[f.name].description = f.description
            if f.required:
                required.append(f.name)
        return Schema(type=SchemaType.OBJECT, properties=properties, required=required or None, description=name)

    def model_fields(self, model: ModelInfo, ctx: ScanContext, _visited: frozenset[str] = frozenset()) -> list[ModelField]:
        """Own fields plus inherited ones from other known models."""
        visited = _visited | {model.name}
        fields: dict[str, ModelField] = {}
        for base in model.bases:
            parent = ctx.models.get(base)
            if parent is not None and base not in visited:
                for f in self.model_fields(parent, ctx, visited):
                    fields[f.name] = f
        for f in model.fields:
            fields[f.name] = f
        return list(fields.values())

    # -- routers ----

    def resolve_router(self, expr: str, path: Path, ctx: ScanContext) -> str | None:
        """Key of the router an expression like `users.router` refers to.

        Uses the importing file's `from x import y` bindings; ambiguous or
        unknown names resolve to None.
        """
        imports = ctx.imports.get(path, {})
        if "." in expr:
            module, _, var = expr.rpartition(".")
            stem = imports[module][1] if module in imports else module.rsplit(".", 1)[-1]
            candidates = [k for k, r in ctx.routers.items() if r.var == var and r.file.stem == stem]
        elif expr in imports:
            module, var = imports[expr]
            stem = module.rsplit(".", 1)[-1]
            candidates = [k for k, r in ctx.routers.items() if r.var == var and r.file.stem == stem]
        else:
            local = router_key(path, expr)
            candidates = [local] if local in ctx.routers else [k for k, r in ctx.routers.items() if r.var == expr]
        return candidates[0] if len(candidates) == 1 else None

    def router_chain(self, router: RouterInfo | None, ctx: ScanContext) -> list[RouterInfo]:
        """The router followed by the routers it is mounted on, innermost first."""
        chain: list[RouterInfo] = []
        while router is not None and all(router is not r for r in chain):
            chain.append(router)
            router = ctx.routers.get(router.parent) if router.parent else None
        return chain


def router_key(path: Path, var: str) -> str:
    return f"{path}:{var}"
