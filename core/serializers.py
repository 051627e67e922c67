from django.contrib.auth import password_validation
from rest_framework import serializers

from core.models import Location, User


class UserSerializer(serializers.ModelSerializer):
    firstName = serializers.CharField(source="first_name", read_only=True)
    lastName = serializers.CharField(source="last_name", read_only=True)
    companyId = serializers.UUIDField(source="company_id", read_only=True)
    defaultLocationId = serializers.UUIDField(source="default_location_id", read_only=True, allow_null=True)
    isActive = serializers.BooleanField(source="is_active", read_only=True)
    createdAt = serializers.DateTimeField(source="date_joined", read_only=True)
    updatedAt = serializers.DateTimeField(source="updated_at", read_only=True)

    class Meta:
        model = User
        fields = [
            "id",
            "email",
            "firstName",
            "lastName",
            "role",
            "companyId",
            "defaultLocationId",
            "isActive",
            "createdAt",
            "updatedAt",
        ]
        read_only_fields = fields


class RegisterSerializer(serializers.Serializer):
    email = serializers.EmailField()
    password = serializers.CharField(write_only=True, min_length=8)
    firstName = serializers.CharField(source="first_name", max_length=150)
    lastName = serializers.CharField(source="last_name", max_length=150)
    companyName = serializers.CharField(source="company_name", max_length=255, required=False, allow_blank=True)

    def validate_password(self, value):
        password_validation.validate_password(value)
        return value


class LoginSerializer(serializers.Serializer):
    email = serializers.EmailField()
    password = serializers.CharField(write_only=True)


class RefreshSerializer(serializers.Serializer):
    refreshToken = serializers.CharField(source="refresh_token")


class UserCreateSerializer(serializers.Serializer):
    email = serializers.EmailField()
    password = serializers.CharField(write_only=True, min_length=8)
    firstName = serializers.CharField(source="first_name", max_length=150, required=False, allow_blank=True)
    lastName = serializers.CharField(source="last_name", max_length=150, required=False, allow_blank=True)
    role = serializers.ChoiceField(choices=User.Role.choices, required=False)
    defaultLocationId = serializers.UUIDField(source="default_location_id", required=False, allow_null=True)


class UserUpdateSerializer(serializers.Serializer):
    email = serializers.EmailField(required=False)
    firstName = serializers.CharField(source="first_name", max_length=150, required=False, allow_blank=True)
    lastName = serializers.CharField(source="last_name", max_length=150, required=False, allow_blank=True)
    role = serializers.ChoiceField(choices=User.Role.choices, required=False)
    defaultLocationId = serializers.UUIDField(source="default_location_id", required=False, allow_null=True)
    isActive = serializers.BooleanField(source="is_active", required=False)


class LocationSerializer(serializers.ModelSerializer):
    isActive = serializers.BooleanField(source="is_active", read_only=True)
    createdAt = serializers.DateTimeField(source="created_at", read_only=True)
    updatedAt = serializers.DateTimeField(source="updated_at", read_only=True)

    class Meta:
        model = Location
        fields = ["id", "name", "address", "phone", "isActive", "createdAt", "updatedAt"]
        read_only_fields = ["id"]


class UserSummarySerializer(serializers.ModelSerializer):
    firstName = serializers.CharField(source="first_name")
    lastName = serializers.CharField(source="last_name")

    class Meta:
        model = User
        fields = ["id", "firstName", "lastName", "email", "role"]
        read_only_fields = fields
