import logging

from django.db import connections
from rest_framework import status, viewsets
from rest_framework.decorators import action, api_view, permission_classes
from rest_framework.permissions import AllowAny
from rest_framework.response import Response
from rest_framework.throttling import ScopedRateThrottle
from rest_framework.views import APIView

from common.permissions import TENANT_PERMISSION_CLASSES, IsTokenAuthenticated
from common.responses import created_response, success_response
from core import services
from core.serializers import (
    LocationSerializer,
    LoginSerializer,
    RefreshSerializer,
    RegisterSerializer,
    UserCreateSerializer,
    UserSerializer,
    UserUpdateSerializer,
)

logger = logging.getLogger(__name__)


def _session_payload(session):
    return {
        "user": UserSerializer(session["user"]).data,
        "accessToken": session["accessToken"],
        "refreshToken": session["refreshToken"],
    }


class AuthThrottleMixin:
    permission_classes = [AllowAny]
    throttle_classes = [ScopedRateThrottle]
    throttle_scope = "auth"


class RegisterView(AuthThrottleMixin, APIView):
    def post(self, request):
        serializer = RegisterSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)
        session = services.register_company(**serializer.validated_data)
        return created_response(_session_payload(session))


class LoginView(AuthThrottleMixin, APIView):
    def post(self, request):
        serializer = LoginSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)
        session = services.login(request=request, **serializer.validated_data)
        return success_response(_session_payload(session))


class RefreshView(AuthThrottleMixin, APIView):
    def post(self, request):
        serializer = RefreshSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)
        session = services.refresh_session(serializer.validated_data["refresh_token"])
        return success_response(_session_payload(session))


class MeView(APIView):
    permission_classes = [IsTokenAuthenticated]

    def get(self, request):
        return success_response(UserSerializer(request.user).data)


class UserViewSet(viewsets.ViewSet):
    permission_classes = TENANT_PERMISSION_CLASSES
    permission_action_map = {
        "list": "users.view",
        "retrieve": "users.view",
        "technicians": "users.technicians.view",
        "create": "users.manage",
        "update": "users.manage",
        "partial_update": "users.manage",
        "destroy": "users.manage",
    }

    def list(self, request):
        users = services.list_users(request.company_id, role=request.query_params.get("role"))
        return success_response(UserSerializer(users, many=True).data)

    @action(detail=False, methods=["get"], url_path="technicians")
    def technicians(self, request):
        return success_response(UserSerializer(services.list_technicians(request.company_id), many=True).data)

    def retrieve(self, request, pk=None):
        return success_response(UserSerializer(services.get_user(request.company_id, pk)).data)

    def create(self, request):
        serializer = UserCreateSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)
        user = services.create_user(request.company_id, serializer.validated_data)
        return created_response(UserSerializer(user).data)

    def update(self, request, pk=None):
        serializer = UserUpdateSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)
        user = services.update_user(request.company_id, pk, serializer.validated_data)
        return success_response(UserSerializer(user).data)

    def partial_update(self, request, pk=None):
        return self.update(request, pk=pk)

    def destroy(self, request, pk=None):
        user = services.deactivate_user(request.company_id, pk, request.user)
        return success_response(UserSerializer(user).data)


class LocationViewSet(viewsets.ViewSet):
    permission_classes = TENANT_PERMISSION_CLASSES
    permission_action_map = {"list": "locations.view", "create": "locations.manage"}

    def list(self, request):
        return success_response(LocationSerializer(services.list_locations(request.company_id), many=True).data)

    def create(self, request):
        serializer = LocationSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)
        location = services.create_location(request.company_id, serializer.validated_data)
        return created_response(LocationSerializer(location).data)


@api_view(["GET"])
@permission_classes([AllowAny])
def healthz(request):
    return Response({"status": "ok", "request_id": getattr(request, "request_id", None)})


@api_view(["GET"])
@permission_classes([AllowAny])
def readyz(request):
    try:
        with connections["default"].cursor() as cursor:
            cursor.execute("SELECT 1")
            cursor.fetchone()
    except Exception as exc:
        logger.exception("readiness_check_failed")
        return Response(
            {"status": "error", "request_id": getattr(request, "request_id", None), "detail": str(exc)},
            status=status.HTTP_503_SERVICE_UNAVAILABLE,
        )

    return Response({"status": "ready", "request_id": getattr(request, "request_id", None)})
