"""Auto-detect which framework (or API description file) a project uses.

Every supported ecosystem is scored from cheap signals: build files,
framework imports, application objects and the number of route
declarations. A conventional OpenAPI/Swagger document wins outright.
"""

import os
import re
from dataclasses import dataclass, field
from pathlib import Path

import structlog
import yaml

from .base import DetectionResult, ProjectType
from .helpers import find_source_files, read_source

PROJECT_FILE = 20
FRAMEWORK_FILE = 40
CODE_PATTERN = 60
ENDPOINT_BONUS_CAP = 80
OPENAPI_SPEC = 100
MIN_CONFIDENCE = 30

SPEC_LOCATIONS = (
    "openapi.json", "openapi.yaml", "openapi.yml",
    "swagger.json", "swagger.yaml", "swagger.yml",
    "api-spec.json", "api-spec.yaml",
    "api.json", "api.yaml",
    "docs/openapi.json", "docs/openapi.yaml", "docs/swagger.json", "docs/swagger.yaml",
    "spec/openapi.json", "spec/openapi.yaml",
    "api/openapi.json", "api/openapi.yaml",
)
SPEC_NAMES = re.compile(r"^(openapi|swagger)\.(json|ya?ml)$")
SPEC_SEARCH_IGNORED = {"node_modules", "vendor", ".git"}

PYTHON_MARKERS = ("requirements.txt", "pyproject.toml", "setup.py", "Pipfile", "poetry.lock")
JVM_BUILD_FILES = ("pom.xml", "build.gradle", "build.gradle.kts")

_FASTAPI_IMPORT = re.compile(r"^\s*(?:from\s+fastapi\s+import|import\s+fastapi)\b", re.M)
_FASTAPI_ROUTE = re.compile(r"@(?:app|router)\.(?:get|post|put|delete|patch)\s*\(", re.I)
_FLASK_IMPORT = re.compile(r"^\s*(?:from\s+flask\s+import|import\s+flask)\b", re.M)
_FLASK_ROUTE = re.compile(r"@\w+\.route\s*\(")
_DRF_IMPORT = re.compile(r"^\s*(?:from\s+rest_framework|import\s+rest_framework)\b", re.M)
_DRF_API_VIEW = re.compile(r"@api_view\s*\(")
_DRF_VIEWSET = re.compile(r"class\s+\w+\s*\(\s*(?:viewsets\.)?(?:ModelViewSet|ViewSet|GenericViewSet|ReadOnlyModelViewSet)")
_DRF_APIVIEW = re.compile(r"class\s+\w+\s*\(\s*(?:generics\.|views\.)?(?:APIView|GenericAPIView|ListCreateAPIView|RetrieveUpdateDestroyAPIView)")
_DRF_SERIALIZER = re.compile(r"class\s+\w+Serializer\s*\(")
_SPRING_MAPPING = re.compile(r"@(?:Get|Post|Put|Delete|Patch|Request)Mapping\b")
_ASPNET_VERB = re.compile(r"\[Http(?:Get|Post|Put|Delete|Patch)\b")


@dataclass
class Candidate:
    """Score collected for one framework."""

    type: ProjectType
    score: int = 0
    reasons: list[str] = field(default_factory=list)
    files: list[Path] = field(default_factory=list)
    endpoints: int = 0

    def add(self, points: int, reason: str, path: Path | None = None) -> None:
        self.score += points
        self.reasons.append(reason)
        if path is not None and path not in self.files:
            self.files.append(path)

    def add_endpoint_bonus(self, weight: int) -> None:
        if self.endpoints:
            self.add(min(ENDPOINT_BONUS_CAP, self.endpoints * weight), f"{self.endpoints} endpoint(s) found")

    def to_result(self, spec_file: Path | None = None) -> DetectionResult:
        return DetectionResult(
            type=self.type,
            confidence=min(self.score, 100),
            reasons=self.reasons,
            spec_file=spec_file,
            project_files=self.files,
            estimated_endpoints=self.endpoints or None,
        )


def is_openapi_document(path: Path) -> bool:
    """True when ``path`` parses as a mapping declaring `openapi` or `swagger`."""
    try:
        data = yaml.safe_load(read_source(path))
    except (OSError, UnicodeDecodeError, yaml.YAMLError):
        return False
    return isinstance(data, dict) and isinstance(data.get("openapi") or data.get("swagger"), (str, float, int))


class ProjectDetector:
    """Scores a directory against every supported framework."""

    def __init__(self, logger=None, max_depth: int = 3):
        self.logger = logger or structlog.get_logger(__name__)
        self.max_depth = max_depth

    def detect(self, path: str | Path | None = None) -> DetectionResult:
        root = Path(path) if path else Path.cwd()
        self.logger.debug("detecting", path=str(root))

        if root.is_file():
            if is_openapi_document(root):
                return DetectionResult(
                    type=ProjectType.OPENAPI,
                    confidence=OPENAPI_SPEC,
                    reasons=[f"OpenAPI document: {root.name}"],
                    spec_file=root,
                    project_files=[root],
                )
            return self._unknown([f"Not an OpenAPI document: {root}"])
        if not root.is_dir():
            return self._unknown([f"Directory not found: {root}"])

        spec = self.find_spec(root)
        if spec is not None:
            self.logger.debug("spec_found", spec=str(spec))
            return DetectionResult(
                type=ProjectType.OPENAPI,
                confidence=OPENAPI_SPEC,
                reasons=[f"OpenAPI document found: {spec.relative_to(root)}"],
                spec_file=spec,
                project_files=[spec],
            )

        ranked = sorted(self.candidates(root), key=lambda c: c.score, reverse=True)
        if not ranked or ranked[0].score <= 0:
            return self._unknown(["No supported project type found"])
        best = ranked[0]
        if best.score < MIN_CONFIDENCE:
            reasons = ["Detection score below the minimum threshold"]
            reasons += [f"{c.type.value}: {c.score}" for c in ranked if c.score > 0]
            return self._unknown(reasons)

        self.logger.debug("detected", type=best.type.value, confidence=min(best.score, 100))
        return best.to_result()

    def candidates(self, root: str | Path) -> list[Candidate]:
        """Every framework's score, in evaluation order: Python, JVM, CLR."""
        root = Path(root)
        return [*self._python(root), self._spring(root), self._aspnet(root)]

    # -- openapi ----

    def find_spec(self, root: Path) -> Path | None:
        for location in SPEC_LOCATIONS:
            path = root / location
            if path.is_file() and is_openapi_document(path):
                return path
        named = []
        for dirpath, dirnames, filenames in os.walk(root):
            if len(Path(dirpath).relative_to(root).parts) >= self.max_depth:
                dirnames[:] = []
            else:
                dirnames[:] = [d for d in dirnames if d not in SPEC_SEARCH_IGNORED]
            named.extend(Path(dirpath) / name for name in filenames if SPEC_NAMES.match(name))
        for path in sorted(named):
            if is_openapi_document(path):
                return path
        return None

    # -- python ----

    def _python(self, root: Path) -> list[Candidate]:
        fastapi = Candidate(ProjectType.FASTAPI)
        flask = Candidate(ProjectType.FLASK)
        django = Candidate(ProjectType.DJANGO_REST)

        markers = [root / m for m in PYTHON_MARKERS if (root / m).is_file()]
        files = find_source_files(root, (".py",), ("migrations",), self.max_depth)
        if not markers and not files:
            return [fastapi, flask, django]
        for c in (fastapi, flask, django):
            c.files.extend(markers)

        if (root / "manage.py").is_file():
            django.add(PROJECT_FILE, "Django project (manage.py)", root / "manage.py")

        for path, text in self._read(files, root):
            rel = path.relative_to(root)
            if _FASTAPI_IMPORT.search(text):
                fastapi.add(CODE_PATTERN, f"FastAPI import: {rel}", path)
            if re.search(r"\bFastAPI\s*\(", text):
                fastapi.add(FRAMEWORK_FILE, f"FastAPI application: {rel}")
            if "APIRouter(" in text:
                fastapi.add(PROJECT_FILE, f"APIRouter: {rel}")
            fastapi.endpoints += len(_FASTAPI_ROUTE.findall(text))

            if _FLASK_IMPORT.search(text):
                flask.add(CODE_PATTERN, f"Flask import: {rel}", path)
            if re.search(r"\bFlask\s*\(", text):
                flask.add(FRAMEWORK_FILE, f"Flask application: {rel}")
            if "Blueprint(" in text:
                flask.add(PROJECT_FILE, f"Flask Blueprint: {rel}")
            flask.endpoints += len(_FLASK_ROUTE.findall(text))

            if _DRF_IMPORT.search(text):
                django.add(CODE_PATTERN, f"Django REST framework import: {rel}", path)
            django.endpoints += len(_DRF_API_VIEW.findall(text))
            if _DRF_VIEWSET.search(text):
                django.add(FRAMEWORK_FILE, f"ViewSet: {rel}")
                django.endpoints += 6
            if _DRF_APIVIEW.search(text):
                django.add(CODE_PATTERN, f"APIView: {rel}")
                django.endpoints += 1
            if "DefaultRouter(" in text or "SimpleRouter(" in text:
                django.add(PROJECT_FILE, f"DRF router: {rel}")
            if _DRF_SERIALIZER.search(text):
                django.add(PROJECT_FILE, f"Serializer: {rel}")

        fastapi.add_endpoint_bonus(5)
        flask.add_endpoint_bonus(5)
        django.add_endpoint_bonus(3)
        return [fastapi, flask, django]

    # -- jvm ----

    def _spring(self, root: Path) -> Candidate:
        candidate = Candidate(ProjectType.SPRING_BOOT)
        build_files = [root / name for name in JVM_BUILD_FILES if (root / name).is_file()]
        if not build_files:
            return candidate

        candidate.add(PROJECT_FILE, f"JVM build file: {build_files[0].name}")
        for build_file in build_files:
            candidate.files.append(build_file)
            try:
                if "spring-boot" in read_source(build_file):
                    candidate.add(FRAMEWORK_FILE, f"Spring Boot dependency in {build_file.name}")
            except (OSError, UnicodeDecodeError) as e:
                self.logger.debug("read_failed", path=str(build_file), error=str(e))

        files = find_source_files(root, (".java",), (), self.max_depth + 2)
        for path, text in self._read(files, root):
            if "@RestController" in text or "@Controller" in text:
                candidate.add(CODE_PATTERN, f"Controller: {path.relative_to(root)}", path)
                candidate.endpoints += len(_SPRING_MAPPING.findall(text))
        candidate.add_endpoint_bonus(3)
        return candidate

    # -- clr ----

    def _aspnet(self, root: Path) -> Candidate:
        candidate = Candidate(ProjectType.ASPNET_CORE)
        projects = find_source_files(root, (".csproj",), (), self.max_depth)
        if not projects:
            return candidate

        candidate.score = PROJECT_FILE
        for path, text in self._read(projects, root):
            candidate.files.append(path)
            candidate.reasons.append(f".NET project: {path.relative_to(root)}")
            if "Microsoft.NET.Sdk.Web" in text or "Microsoft.AspNetCore" in text:
                candidate.add(FRAMEWORK_FILE, "ASP.NET Core web project")

        files = find_source_files(root, (".cs",), ("Migrations",), self.max_depth + 2)
        for path, text in self._read(files, root):
            if "[ApiController]" in text or ": ControllerBase" in text or ": Controller" in text:
                candidate.add(CODE_PATTERN, f"Controller: {path.relative_to(root)}", path)
                candidate.endpoints += len(_ASPNET_VERB.findall(text))
        candidate.add_endpoint_bonus(3)
        return candidate

    # -- helpers ----

    def _read(self, files: list[Path], root: Path):
        for path in files:
            try:
                yield path, read_source(path)
            except (OSError, UnicodeDecodeError) as e:
                self.logger.debug("read_failed", path=str(path.relative_to(root)), error=str(e))

    def _unknown(self, reasons: list[str]) -> DetectionResult:
        return DetectionResult(type=ProjectType.UNKNOWN, confidence=0, reasons=reasons)
