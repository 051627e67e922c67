from django.urls import path
from rest_framework.routers import DefaultRouter

from core.views import (
    LocationViewSet,
    LoginView,
    MeView,
    RefreshView,
    RegisterView,
    UserViewSet,
    healthz,
    readyz,
)

router = DefaultRouter()
router.register(r"users", UserViewSet, basename="user")
router.register(r"locations", LocationViewSet, basename="location")

urlpatterns = router.urls + [
    path("auth/register/", RegisterView.as_view(), name="auth_register"),
    path("auth/login/", LoginView.as_view(), name="auth_login"),
    path("auth/refresh/", RefreshView.as_view(), name="auth_refresh"),
    path("auth/me/", MeView.as_view(), name="auth_me"),
    path("healthz/", healthz, name="healthz"),
    path("readyz/", readyz, name="readyz"),
]
