import pytest
from pydantic import ValidationError

from apigen.extractor.base import (
    ApiInfo,
    DetectionResult,
    Endpoint,
    ExtractResult,
    Group,
    HttpMethod,
    Parameter,
    ParameterLocation,
    Project,
    ProjectType,
    Schema,
    SchemaType,
    normalize_path,
)


def _project(*groups: Group) -> Project:
    return Project(
        info=ApiInfo(title="Test"),
        groups=list(groups),
        project_type=ProjectType.OPENAPI,
        source_path="spec.yaml",
    )


class TestNormalizePath:
    def test_adds_leading_slash(self):
        assert normalize_path("users") == "/users"

    def test_collapses_double_slashes(self):
        assert normalize_path("/api//users///{id}") == "/api/users/{id}"

    def test_strips_trailing_slash(self):
        assert normalize_path("/users/") == "/users"

    def test_root_stays_root(self):
        assert normalize_path("/") == "/"
        assert normalize_path("") == "/"


class TestSchema:
    def test_drops_constraints_of_other_types(self):
        schema = Schema(type=SchemaType.INTEGER, min_length=3, minimum=1)
        assert schema.min_length is None
        assert schema.minimum == 1

    def test_untyped_schema_keeps_everything(self):
        schema = Schema(properties={"a": Schema(type=SchemaType.STRING)}, min_length=2)
        assert schema.properties is not None
        assert schema.min_length == 2

    def test_ref_alias(self):
        schema = Schema.model_validate({"$ref": "#/components/schemas/User"})
        assert schema.ref == "#/components/schemas/User"

    def test_nested_items(self):
        schema = Schema(type=SchemaType.ARRAY, items=Schema(type=SchemaType.STRING))
        assert schema.items.type == SchemaType.STRING


class TestParameter:
    def test_path_parameter_is_always_required(self):
        param = Parameter(name="id", location=ParameterLocation.PATH, required=False)
        assert param.required is True

    def test_query_parameter_defaults_to_optional_string(self):
        param = Parameter(name="q", location=ParameterLocation.QUERY)
        assert param.required is False
        assert param.schema_.type == SchemaType.STRING

    def test_invalid_location_rejected(self):
        with pytest.raises(ValidationError):
            Parameter(name="x", location="body")


class TestEndpoint:
    def test_method_is_uppercased(self):
        endpoint = Endpoint(method="get", path="/users")
        assert endpoint.method == HttpMethod.GET

    def test_path_is_normalized(self):
        endpoint = Endpoint(method="GET", path="users//{id}/")
        assert endpoint.path == "/users/{id}"

    def test_unknown_method_rejected(self):
        with pytest.raises(ValidationError):
            Endpoint(method="FETCH", path="/")

    def test_params_in(self):
        endpoint = Endpoint(
            method="GET",
            path="/users/{id}",
            parameters=[
                Parameter(name="id", location=ParameterLocation.PATH),
                Parameter(name="q", location=ParameterLocation.QUERY),
                Parameter(name="page", location=ParameterLocation.QUERY),
            ],
        )
        assert [p.name for p in endpoint.params_in(ParameterLocation.QUERY)] == ["q", "page"]
        assert [p.name for p in endpoint.params_in(ParameterLocation.HEADER)] == []


class TestProject:
    def test_endpoint_count_and_iteration(self):
        project = _project(
            Group(name="users", endpoints=[Endpoint(method="GET", path="/users"), Endpoint(method="POST", path="/users")]),
            Group(name="pets", endpoints=[Endpoint(method="GET", path="/pets")]),
        )
        assert project.endpoint_count == 3
        assert [e.path for e in project.endpoints()] == ["/users", "/users", "/pets"]

    def test_default_config(self):
        project = _project()
        assert project.config.base_url == "http://localhost:3000"
        assert project.auth is None


class TestExtractResult:
    def test_ok_counts_endpoints(self):
        project = _project(Group(name="g", endpoints=[Endpoint(method="GET", path="/")]))
        result = ExtractResult.ok(project, files_processed=1, warnings=["w"])
        assert result.success
        assert result.endpoints_found == 1
        assert result.warnings == ["w"]

    def test_failure_has_no_project(self):
        result = ExtractResult.failure(["boom"])
        assert not result.success
        assert result.project is None
        assert result.errors == ["boom"]


class TestDetectionResult:
    def test_confidence_bounds(self):
        with pytest.raises(ValidationError):
            DetectionResult(type=ProjectType.FLASK, confidence=120)
        with pytest.raises(ValidationError):
            DetectionResult(type=ProjectType.FLASK, confidence=-1)
