"""Lookup table from project type to extractor class."""

from ..errors import UnsupportedFrameworkError
from .aspnet import AspNetCoreExtractor
from .base import ProjectConfig, ProjectType
from .django import DjangoRestExtractor
from .fastapi import FastApiExtractor
from .flask import FlaskExtractor
from .openapi import OpenApiExtractor
from .source import BaseExtractor
from .spring import SpringBootExtractor

EXTRACTORS: dict[ProjectType, type[BaseExtractor]] = {
    ProjectType.OPENAPI: OpenApiExtractor,
    ProjectType.FASTAPI: FastApiExtractor,
    ProjectType.FLASK: FlaskExtractor,
    ProjectType.DJANGO_REST: DjangoRestExtractor,
    ProjectType.SPRING_BOOT: SpringBootExtractor,
    ProjectType.ASPNET_CORE: AspNetCoreExtractor,
}

ALIASES = {
    "swagger": ProjectType.OPENAPI,
    "django": ProjectType.DJANGO_REST,
    "drf": ProjectType.DJANGO_REST,
    "spring": ProjectType.SPRING_BOOT,
    "springboot": ProjectType.SPRING_BOOT,
    "aspnet": ProjectType.ASPNET_CORE,
    "dotnet": ProjectType.ASPNET_CORE,
}


def supported_frameworks() -> list[str]:
    return [t.value for t in EXTRACTORS]


def parse_framework(name: str) -> ProjectType:
    """Map a CLI/config framework name to a ProjectType.

    Accepts the enum values (`fastapi`, `spring-boot`, ...) and the short
    aliases in ALIASES. Unknown names raise UnsupportedFrameworkError.
    """
    key = name.strip().lower()
    if key in ALIASES:
        return ALIASES[key]
    try:
        project_type = ProjectType(key)
    except ValueError:
        raise UnsupportedFrameworkError(
            f"Unknown framework '{name}'. Supported: {', '.join(supported_frameworks())}"
        ) from None
    if project_type not in EXTRACTORS:
        raise UnsupportedFrameworkError(
            f"Unknown framework '{name}'. Supported: {', '.join(supported_frameworks())}"
        )
    return project_type


def create_extractor(project_type: ProjectType, config: ProjectConfig | None = None, logger=None) -> BaseExtractor:
    extractor_cls = EXTRACTORS.get(project_type)
    if extractor_cls is None:
        raise UnsupportedFrameworkError(
            f"No extractor for project type '{project_type.value}'. "
            f"Supported: {', '.join(supported_frameworks())}"
        )
    return extractor_cls(config=config, logger=logger)
