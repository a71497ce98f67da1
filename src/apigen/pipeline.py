"""End-to-end run: validate config, detect, extract, resolve, generate.

Each step is a separate method so the CLI can report progress between
them; ``run`` chains them for library callers.
"""

from dataclasses import dataclass, field
from pathlib import Path

import structlog

from .config import ApigenConfig, validate_config
from .errors import ConfigError, DetectionError, ExtractionError, UnsupportedFrameworkError
from .extractor.base import DetectionResult, ExtractResult, Project, ProjectConfig, ProjectType
from .extractor.detect import OPENAPI_SPEC, ProjectDetector
from .extractor.refs import is_url
from .extractor.registry import create_extractor, parse_framework, supported_frameworks
from .generator.base import BaseGenerator, GeneratorOptions, GeneratorResult
from .generator.curl import CurlGenerator
from .generator.postman import PostmanGenerator
from .generator.readme import ReadmeGenerator
from .resolver.auth import AuthResolver
from .resolver.examples import ExampleResolver

GENERATORS: dict[str, type[BaseGenerator]] = {
    "postman": PostmanGenerator,
    "curl": CurlGenerator,
    "readme": ReadmeGenerator,
}


@dataclass
class RunResult:
    detection: DetectionResult
    extraction: ExtractResult
    outputs: dict[str, GeneratorResult] = field(default_factory=dict)

    @property
    def project(self) -> Project:
        return self.extraction.project

    @property
    def success(self) -> bool:
        return all(r.success for r in self.outputs.values())


class Pipeline:
    def __init__(self, config: ApigenConfig, logger=None, detector: ProjectDetector | None = None):
        self.config = config
        self.logger = logger or structlog.get_logger(__name__)
        self.detector = detector or ProjectDetector(logger=self.logger)

    def validate(self) -> None:
        problems = validate_config(self.config)
        if self.config.framework != "auto":
            try:
                parse_framework(self.config.framework)
            except UnsupportedFrameworkError as e:
                problems.append(str(e))
        if problems:
            raise ConfigError(problems)

    def detect(self) -> DetectionResult:
        """Which extractor to run and on what.

        An explicit framework skips detection. For ``openapi`` with an
        explicit source, that source is the document; with ``auto`` the
        working directory is searched for one.
        """
        source = self.config.source_path()
        if self.config.framework != "auto":
            project_type = parse_framework(self.config.framework)
            spec_file = None
            if project_type == ProjectType.OPENAPI:
                if self.config.source == "auto":
                    spec_file = self.detector.find_spec(Path(source))
                    if spec_file is None:
                        raise DetectionError(f"No OpenAPI document found in {source}", ["Pass the document with -s"])
                elif not is_url(source):
                    spec_file = Path(source)
            self.logger.debug("framework_override", framework=project_type.value)
            return DetectionResult(
                type=project_type,
                confidence=OPENAPI_SPEC,
                reasons=[f"Framework set explicitly: {project_type.value}"],
                spec_file=spec_file,
            )

        if is_url(source):
            return DetectionResult(type=ProjectType.OPENAPI, confidence=OPENAPI_SPEC, reasons=[f"Remote document: {source}"])

        result = self.detector.detect(source)
        if result.type == ProjectType.UNKNOWN:
            raise DetectionError(
                f"Could not detect a supported framework in {source}. "
                f"Use -f to choose one of: {', '.join(supported_frameworks())}",
                result.reasons,
            )
        self.logger.info("detected", framework=result.type.value, confidence=result.confidence)
        return result

    def extract(self, detection: DetectionResult) -> ExtractResult:
        source = detection.spec_file or self.config.source_path()
        extractor = create_extractor(detection.type, self.project_config(), logger=self.logger)
        result = extractor.extract(source)
        if not result.success:
            raise ExtractionError(result.errors, result.warnings)
        self.logger.info("extracted", endpoints=result.endpoints_found, files=result.files_processed)
        return result

    def resolve(self, project: Project) -> Project:
        mock = self.config.mock_data
        ExampleResolver(enabled=mock.enabled, locale=mock.locale, seed=mock.seed, logger=self.logger).resolve(project)
        AuthResolver(self.config.auth, logger=self.logger).resolve(project)
        return project

    def generate(self, project: Project) -> dict[str, GeneratorResult]:
        results = {}
        options = GeneratorOptions(output_dir=self.output_dir())
        for name in self.config.generators.enabled():
            generator = GENERATORS[name](logger=self.logger)
            results[name] = generator.generate(project, options)
        return results

    def run(self) -> RunResult:
        self.validate()
        detection = self.detect()
        extraction = self.extract(detection)
        self.resolve(extraction.project)
        return RunResult(detection, extraction, self.generate(extraction.project))

    def output_dir(self) -> Path:
        """``output`` resolved against the source directory, or the working dir
        when the source is a document or URL."""
        source = self.config.source_path()
        base = Path(source) if not is_url(source) and Path(source).is_dir() else Path.cwd()
        return (base / self.config.output).resolve()

    def project_config(self) -> ProjectConfig:
        return ProjectConfig(
            base_url=self.config.base_url,
            output_dir=str(self.output_dir()),
            generate_mock_data=self.config.mock_data.enabled,
            mock_locale=self.config.mock_data.locale,
            mock_seed=self.config.mock_data.seed,
        )
