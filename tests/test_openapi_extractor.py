from pathlib import Path

from apigen.extractor.base import AuthType, HttpMethod, ParameterLocation, ProjectConfig, ProjectType, SchemaType
from apigen.extractor.openapi import OpenApiExtractor

FIXTURES = Path(__file__).parent / "fixtures"


def _endpoint(project, method: str, path: str):
    return next(e for e in project.endpoints() if e.method.value == method and e.path == path)


class TestOpenApi3:
    def test_petstore(self):
        result = OpenApiExtractor().extract(FIXTURES / "petstore.yaml")

        assert result.success, result.errors
        project = result.project
        assert project.project_type == ProjectType.OPENAPI
        assert project.info.title == "Petstore"
        assert project.info.version == "1.2.0"
        assert project.endpoint_count == 6
        assert result.endpoints_found == 6
        assert result.files_processed == 1

    def test_groups_follow_declared_tags(self):
        project = OpenApiExtractor().extract(FIXTURES / "petstore.yaml").project
        assert [g.name for g in project.groups] == ["pets", "store", "default"]
        assert project.groups[0].description == "Everything about pets"
        assert len(project.groups[0].endpoints) == 4

    def test_base_url_substitutes_server_variables(self):
        project = OpenApiExtractor().extract(FIXTURES / "petstore.yaml").project
        assert project.config.base_url == "https://api.petstore.example.com/v1"
        assert project.info.servers[1] == "http://localhost:8080/v1"

    def test_base_url_falls_back_to_config(self):
        config = ProjectConfig(base_url="http://api.local")
        project = OpenApiExtractor(config=config).extract(FIXTURES / "minimal.yaml").project
        assert project.config.base_url == "http://api.local"

    def test_bearer_auth(self):
        project = OpenApiExtractor().extract(FIXTURES / "petstore.yaml").project
        assert project.auth.type == AuthType.BEARER

    def test_query_parameter(self):
        project = OpenApiExtractor().extract(FIXTURES / "petstore.yaml").project
        endpoint = _endpoint(project, "GET", "/pets")
        limit = endpoint.parameters[0]
        assert limit.name == "limit"
        assert limit.location == ParameterLocation.QUERY
        assert limit.required is False
        assert limit.example == 20
        assert limit.schema_.maximum == 100
        status = endpoint.parameters[1]
        assert status.schema_.enum == ["available", "pending", "sold"]

    def test_path_level_parameters_are_merged(self):
        project = OpenApiExtractor().extract(FIXTURES / "petstore.yaml").project
        endpoint = _endpoint(project, "GET", "/pets/{petId}")
        assert [(p.name, p.location) for p in endpoint.parameters] == [
            ("petId", ParameterLocation.PATH),
            ("X-Request-ID", ParameterLocation.HEADER),
        ]
        assert endpoint.parameters[0].required is True
        assert endpoint.parameters[0].schema_.type == SchemaType.INTEGER
        assert endpoint.parameters[1].schema_.format == "uuid"

    def test_request_body_ref_is_inlined(self):
        project = OpenApiExtractor().extract(FIXTURES / "petstore.yaml").project
        endpoint = _endpoint(project, "POST", "/pets")
        body = endpoint.request_body
        assert body.required is True
        assert body.content_type == "application/json"
        assert body.schema_.type == SchemaType.OBJECT
        assert set(body.schema_.properties) == {"name", "tag"}
        assert body.schema_.required == ["name"]

    def test_responses(self):
        project = OpenApiExtractor().extract(FIXTURES / "petstore.yaml").project
        endpoint = _endpoint(project, "GET", "/pets")
        response = endpoint.responses[0]
        assert response.status_code == 200
        assert response.schema_.type == SchemaType.ARRAY
        assert response.schema_.items.properties["name"].example == "Rex"

        create = _endpoint(project, "POST", "/pets")
        assert [r.status_code for r in create.responses] == [201, 400]

    def test_media_example_and_default_response(self):
        project = OpenApiExtractor().extract(FIXTURES / "petstore.yaml").project
        endpoint = _endpoint(project, "POST", "/store/orders")
        assert endpoint.request_body.example == {"petId": 1, "quantity": 2}
        assert endpoint.request_body.required is False
        assert endpoint.responses[0].status_code == 200
        assert endpoint.operation_id is None

    def test_deprecated_and_operation_id(self):
        project = OpenApiExtractor().extract(FIXTURES / "petstore.yaml").project
        endpoint = _endpoint(project, "DELETE", "/pets/{petId}")
        assert endpoint.deprecated is True
        assert endpoint.operation_id == "deletePet"
        assert endpoint.method == HttpMethod.DELETE

    def test_minimal_document(self):
        result = OpenApiExtractor().extract(FIXTURES / "minimal.yaml")
        assert result.success
        endpoint = next(result.project.endpoints())
        assert endpoint.path == "/"
        assert result.project.groups[0].name == "default"
        assert result.project.auth is None


class TestCircularAndBroken:
    def test_circular_schema_becomes_ref(self):
        result = OpenApiExtractor().extract(FIXTURES / "circular.yaml")
        assert result.success
        schema = next(result.project.endpoints()).responses[0].schema_
        children = schema.properties["children"]
        assert children.type == SchemaType.ARRAY
        assert children.items.ref == "#/components/schemas/Node"
        assert children.items.properties is None

    def test_unresolvable_ref_falls_back_to_bundling(self):
        result = OpenApiExtractor().extract(FIXTURES / "broken_ref.yaml")
        assert result.success
        assert any("fell back to bundling" in w for w in result.warnings)
        assert "Unresolved $ref: ./missing.yaml#/Thing" in result.warnings
        schema = next(result.project.endpoints()).responses[0].schema_
        assert schema.ref == "./missing.yaml#/Thing"


class TestSwagger2:
    def test_swagger2_document(self):
        result = OpenApiExtractor().extract(FIXTURES / "swagger2.json")
        assert result.success, result.errors
        project = result.project
        assert project.config.base_url == "https://legacy.example.com/api"
        assert project.endpoint_count == 3

    def test_api_key_auth(self):
        project = OpenApiExtractor().extract(FIXTURES / "swagger2.json").project
        assert project.auth.type == AuthType.API_KEY
        assert project.auth.key_name == "X-Token"
        assert project.auth.key_location == ParameterLocation.HEADER

    def test_body_parameter(self):
        project = OpenApiExtractor().extract(FIXTURES / "swagger2.json").project
        endpoint = _endpoint(project, "PUT", "/users/{id}")
        assert endpoint.request_body.required is True
        assert endpoint.request_body.schema_.properties["email"].format == "email"
        assert [p.name for p in endpoint.parameters] == ["id"]

    def test_form_data_is_multipart(self):
        project = OpenApiExtractor().extract(FIXTURES / "swagger2.json").project
        endpoint = _endpoint(project, "POST", "/upload")
        body = endpoint.request_body
        assert body.content_type == "multipart/form-data"
        assert body.schema_.properties["file"].format == "binary"
        assert body.schema_.required == ["file"]

    def test_response_schema(self):
        project = OpenApiExtractor().extract(FIXTURES / "swagger2.json").project
        endpoint = _endpoint(project, "GET", "/users/{id}")
        assert endpoint.responses[0].content_type == "application/json"
        assert endpoint.parameters[0].schema_.type == SchemaType.INTEGER


class TestFailures:
    def test_missing_file(self, tmp_path):
        result = OpenApiExtractor().extract(tmp_path / "nope.yaml")
        assert not result.success
        assert "Cannot read" in result.errors[0]

    def test_not_an_openapi_document(self, tmp_path):
        path = tmp_path / "config.yaml"
        path.write_text("name: not-a-spec\n")
        result = OpenApiExtractor().extract(path)
        assert not result.success
        assert "not an OpenAPI or Swagger document" in result.errors[0]

    def test_custom_loader(self):
        doc = {
            "openapi": "3.1.0",
            "info": {"title": "Remote", "version": "1"},
            "paths": {"/items": {"get": {"tags": ["items"], "responses": {"200": {"description": "ok"}}}}},
            "components": {"securitySchemes": {"key": {"type": "apiKey", "in": "query", "name": "api_key"}}},
        }
        extractor = OpenApiExtractor(loader=lambda location: doc)
        result = extractor.extract("https://example.com/openapi.json")
        assert result.success
        assert result.project.source_path == "https://example.com/openapi.json"
        assert result.project.auth.key_location == ParameterLocation.QUERY
        assert result.project.groups[0].name == "items"
