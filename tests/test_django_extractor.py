from pathlib import Path

from apigen.extractor.base import ParameterLocation, ProjectType, SchemaType
from apigen.extractor.django import DjangoRestExtractor

FIXTURES = Path(__file__).parent / "fixtures"
APP = FIXTURES / "drf_app"


def _endpoint(project, method: str, path: str):
    return next(e for e in project.endpoints() if e.method.value == method and e.path == path)


class TestDjangoRestExtractor:
    def test_extracts_project(self):
        result = DjangoRestExtractor().extract(APP)

        assert result.success, result.errors
        project = result.project
        assert project.project_type == ProjectType.DJANGO_REST
        assert project.info.title == "shop"
        assert project.endpoint_count == 8

    def test_viewset_routes_under_include_prefix(self):
        project = DjangoRestExtractor().extract(APP).project
        paths = {(e.method.value, e.path) for e in project.endpoints()}
        assert paths == {
            ("GET", "/api/v1/products"),
            ("POST", "/api/v1/products"),
            ("GET", "/api/v1/products/{id}"),
            ("PUT", "/api/v1/products/{id}"),
            ("PATCH", "/api/v1/products/{id}"),
            ("DELETE", "/api/v1/products/{id}"),
            ("POST", "/api/v1/products/{id}/publish"),
            ("GET", "/api/v1/health"),
        }

    def test_groups(self):
        project = DjangoRestExtractor().extract(APP).project
        groups = {g.name: len(g.endpoints) for g in project.groups}
        assert groups == {"Product": 7, "Health": 1}
        assert _endpoint(project, "GET", "/api/v1/health").summary == "Service health."

    def test_list_action(self):
        project = DjangoRestExtractor().extract(APP).project
        endpoint = _endpoint(project, "GET", "/api/v1/products")
        assert endpoint.summary == "List Product"
        assert [(p.name, p.location) for p in endpoint.parameters] == [
            ("in_stock", ParameterLocation.QUERY),
            ("search", ParameterLocation.QUERY),
        ]
        schema = endpoint.responses[0].schema_
        assert schema.type == SchemaType.ARRAY
        assert list(schema.items.properties) == ["id", "name", "price", "in_stock"]

    def test_serializer_fields_follow_model(self):
        project = DjangoRestExtractor().extract(APP).project
        body = _endpoint(project, "POST", "/api/v1/products").request_body
        props = body.schema_.properties
        assert props["id"].type == SchemaType.INTEGER
        assert props["price"].type == SchemaType.NUMBER
        assert props["in_stock"].type == SchemaType.BOOLEAN
        assert body.schema_.required == ["name", "price"]
        assert body.required is True

    def test_status_codes(self):
        project = DjangoRestExtractor().extract(APP).project
        assert [r.status_code for r in _endpoint(project, "POST", "/api/v1/products").responses] == [201, 400]
        assert [r.status_code for r in _endpoint(project, "GET", "/api/v1/products/{id}").responses] == [200, 404]
        assert [r.status_code for r in _endpoint(project, "DELETE", "/api/v1/products/{id}").responses] == [204, 404]

    def test_partial_update_body_is_optional(self):
        project = DjangoRestExtractor().extract(APP).project
        body = _endpoint(project, "PATCH", "/api/v1/products/{id}").request_body
        assert body.required is False
        assert body.schema_.required is None

    def test_lookup_parameter_is_integer(self):
        project = DjangoRestExtractor().extract(APP).project
        param = _endpoint(project, "GET", "/api/v1/products/{id}").parameters[0]
        assert param.name == "id"
        assert param.location == ParameterLocation.PATH
        assert param.schema_.type == SchemaType.INTEGER

    def test_router_without_urlconf_defaults_to_api(self, tmp_path):
        (tmp_path / "views.py").write_text(
            "from rest_framework import viewsets\n"
            "\n"
            "class TagViewSet(viewsets.ReadOnlyModelViewSet):\n"
            "    lookup_field = 'slug'\n"
        )
        (tmp_path / "routes.py").write_text(
            "from rest_framework.routers import SimpleRouter\n"
            "from views import TagViewSet\n"
            "router = SimpleRouter()\n"
            "router.register(r'tags', TagViewSet)\n"
        )
        result = DjangoRestExtractor().extract(tmp_path)
        assert result.success, result.errors
        paths = [(e.method.value, e.path) for e in result.project.endpoints()]
        assert paths == [("GET", "/api/tags"), ("GET", "/api/tags/{slug}")]
        detail = result.project.groups[0].endpoints[1]
        assert detail.parameters[0].schema_.type == SchemaType.STRING

    def test_same_router_name_in_two_apps(self, tmp_path):
        for app, prefix in (("a", "alphas"), ("b", "betas")):
            (tmp_path / app).mkdir()
            view = f"{prefix.title()[:-1]}ViewSet"
            (tmp_path / app / "views.py").write_text(
                "from rest_framework import viewsets\n"
                "\n"
                f"class {view}(viewsets.ReadOnlyModelViewSet):\n"
                "    pass\n"
            )
            (tmp_path / app / "urls.py").write_text(
                "from django.urls import include, path\n"
                "from rest_framework.routers import DefaultRouter\n"
                f"from .views import {view}\n"
                "router = DefaultRouter()\n"
                f"router.register(r'{prefix}', {view})\n"
                "urlpatterns = [\n"
                "    path('', include(router.urls)),\n"
                "]\n"
            )
        (tmp_path / "urls.py").write_text(
            "from django.urls import include, path\n"
            "urlpatterns = [\n"
            "    path('api/a/', include('a.urls')),\n"
            "    path('api/b/', include('b.urls')),\n"
            "]\n"
        )
        result = DjangoRestExtractor().extract(tmp_path)
        assert result.success, result.errors
        paths = sorted(e.path for e in result.project.endpoints())
        assert paths == ["/api/a/alphas", "/api/a/alphas/{id}", "/api/b/betas", "/api/b/betas/{id}"]


class TestDjangoRestFailures:
    def test_no_routes(self, tmp_path):
        (tmp_path / "models.py").write_text("from django.db import models\n")
        result = DjangoRestExtractor().extract(tmp_path)
        assert not result.success
        assert "No Django REST Framework routes found" in result.errors[0]
