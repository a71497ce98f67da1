from django.urls import include, path
from rest_framework.routers import DefaultRouter

from .views import ProductViewSet, health

router = DefaultRouter()
router.register("products", ProductViewSet)

urlpatterns = [
    path("", include(router.urls)),
    path("health/", health),
]
