"""CLI entry point for apigen."""

from pathlib import Path

import click

from apigen.config import CONFIG_FILE_NAME, load_config, write_example_config
from apigen.errors import ApigenError, ConfigError, DetectionError, ExtractionError
from apigen.extractor.base import ProjectType
from apigen.extractor.detect import ProjectDetector
from apigen.extractor.registry import supported_frameworks
from apigen.logging_config import configure_logging
from apigen.pipeline import Pipeline


def _generator_overrides(postman: bool, curl: bool, readme: bool, all_: bool) -> dict | None:
    """``--all`` enables every generator; any single flag enables only those."""
    if all_:
        return {"postman": True, "curl": True, "readme": True}
    if postman or curl or readme:
        return {"postman": postman, "curl": curl, "readme": readme}
    return None


def _fail(error: ApigenError) -> click.ClickException:
    lines = [str(error)]
    if isinstance(error, DetectionError):
        lines += [f"  - {reason}" for reason in error.reasons]
        lines.append("Hint: pass -f/--framework to skip detection.")
    elif isinstance(error, ExtractionError):
        lines = ["Extraction failed:"] + [f"  - {e}" for e in error.errors]
    elif isinstance(error, ConfigError):
        lines.append(f"Hint: check {CONFIG_FILE_NAME} and APIGEN_* environment variables.")
    return click.ClickException("\n".join(lines))


@click.group()
@click.version_option(package_name="apigen")
def main():
    """apigen: API documentation and test assets from source code."""
    pass


@main.command()
@click.option("-s", "--source", default=None, help="Project directory, OpenAPI file or URL (default: current directory).")
@click.option("-o", "--output", default=None, help="Output directory.")
@click.option("-f", "--framework", default=None, help=f"Framework: auto, {', '.join(supported_frameworks())}.")
@click.option("-b", "--base-url", default=None, help="API base URL used when the source declares none.")
@click.option("-c", "--config", "config_file", default=None, type=click.Path(exists=True, dir_okay=False, path_type=Path), help="Config file (default: nearest apigen.config.json).")
@click.option("--postman", is_flag=True, help="Generate the Postman collection.")
@click.option("--curl", is_flag=True, help="Generate cURL scripts.")
@click.option("--readme", is_flag=True, help="Generate README.md.")
@click.option("--all", "all_", is_flag=True, help="Generate every output.")
@click.option("--no-mock", is_flag=True, help="Use plain placeholders instead of realistic sample data.")
@click.option("--verbose", is_flag=True, help="Show debug logs.")
def generate(source, output, framework, base_url, config_file, postman, curl, readme, all_, no_mock, verbose):
    """Analyze a project and write the selected outputs."""
    configure_logging(verbose)
    config = load_config(
        config_file,
        source=source,
        output=output,
        framework=framework,
        base_url=base_url,
        verbose=verbose or None,
    )
    generators = _generator_overrides(postman, curl, readme, all_)
    if generators is not None:
        config.generators = config.generators.model_copy(update=generators)
    if no_mock:
        config.mock_data = config.mock_data.model_copy(update={"enabled": False})
    if config.verbose and not verbose:
        configure_logging(True)

    pipeline = Pipeline(config)
    try:
        pipeline.validate()
        click.echo(f"Source: {config.source_path()}")
        click.echo("Detecting project type...")
        detection = pipeline.detect()
        click.echo(f"  {detection.type.value} (confidence {detection.confidence}%)")
        if config.verbose:
            for reason in detection.reasons:
                click.echo(f"    - {reason}")

        click.echo("Extracting endpoints...")
        extraction = pipeline.extract(detection)
        project = extraction.project
        click.echo(f"  {project.endpoint_count} endpoint(s) in {len(project.groups)} group(s)")
        if config.verbose:
            for group in project.groups:
                click.echo(f"    - {group.name} ({len(group.endpoints)})")

        pipeline.resolve(project)
        click.echo("Writing outputs...")
        outputs = pipeline.generate(project)
    except ApigenError as e:
        raise _fail(e) from e

    failed = False
    for name, result in outputs.items():
        if result.success:
            click.echo(f"  {name}: {len(result.files)} file(s)")
        else:
            failed = True
            click.echo(f"  {name}: failed", err=True)
            for error in result.errors:
                click.echo(f"    {error}", err=True)
        for warning in result.warnings:
            click.echo(f"    warning: {warning}", err=True)
    for warning in extraction.warnings:
        click.echo(f"Warning: {warning}", err=True)

    if failed:
        raise click.ClickException("Some outputs could not be generated.")
    click.echo(f"Done! Outputs in {pipeline.output_dir()}")


@main.command()
@click.option("-s", "--source", default=None, type=click.Path(path_type=Path), help="Directory or file to inspect (default: current directory).")
@click.option("--verbose", is_flag=True, help="Show detection reasons and debug logs.")
def detect(source: Path | None, verbose: bool):
    """Detect the project type and print it."""
    configure_logging(verbose)
    path = source or Path.cwd()
    click.echo(f"Inspecting {path}...")
    result = ProjectDetector().detect(path)

    if result.type == ProjectType.UNKNOWN:
        click.echo("Result: unknown project type")
        for reason in result.reasons:
            click.echo(f"  - {reason}")
        return

    click.echo(f"Result: {result.type.value}")
    click.echo(f"Confidence: {result.confidence}%")
    if result.spec_file:
        click.echo(f"Spec file: {result.spec_file}")
    if result.estimated_endpoints:
        click.echo(f"Estimated endpoints: {result.estimated_endpoints}")
    if verbose:
        click.echo("Reasons:")
        for reason in result.reasons:
            click.echo(f"  - {reason}")


@main.command()
@click.option("--force", is_flag=True, help="Overwrite an existing config file.")
def init(force: bool):
    """Write a starter apigen.config.json in the current directory."""
    path = Path.cwd() / CONFIG_FILE_NAME
    try:
        write_example_config(path, overwrite=force)
    except FileExistsError:
        raise click.ClickException(f"{path} already exists (use --force to overwrite)") from None
    click.echo(f"Created {path}")
