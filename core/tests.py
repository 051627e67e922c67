import json
import logging
import os
import subprocess
import sys
import tempfile
from datetime import timedelta
from io import StringIO
from pathlib import Path

from django.conf import settings
from django.core.management import call_command
from django.db import DatabaseError
from django.test import SimpleTestCase, TestCase
from rest_framework.test import APIClient
from rest_framework_simplejwt.tokens import AccessToken

from common.authentication import (
    issue_access_token,
    issue_refresh_token,
    verify_access_token,
    verify_refresh_token,
)
from common.logging import JsonFormatter
from core.models import Company, Location, SchemaMigration, User
from core.schema import apply_sql_migrations, is_benign_error


def make_user(company, email, role=User.Role.TECHNICIAN, **extra):
    return User.objects.create_user(email=email, password="pass12345", company=company, role=role, **extra)


class TokenVerificationTests(TestCase):
    def setUp(self):
        self.company = Company.objects.create(name="Fix-It North")
        self.other_company = Company.objects.create(name="Fix-It South")
        self.user = make_user(self.company, "tech@fixit.test")

    def test_access_token_round_trip(self):
        token = issue_access_token(self.user)

        self.assertEqual(verify_access_token(token), self.user)

    def test_access_token_carries_company_claim(self):
        token = AccessToken(issue_access_token(self.user))

        self.assertEqual(token["userId"], str(self.user.id))
        self.assertEqual(token["companyId"], str(self.company.id))
        self.assertEqual(token["type"], "access")

    def test_refresh_token_never_verifies_as_access(self):
        refresh = issue_refresh_token(self.user)

        with self.assertLogs("security.authentication", level="WARNING") as cm:
            self.assertIsNone(verify_access_token(refresh))
        self.assertTrue(any("wrong_token_type" in line for line in cm.output))
        self.assertEqual(verify_refresh_token(refresh), self.user)

    def test_access_token_never_verifies_as_refresh(self):
        with self.assertLogs("security.authentication", level="WARNING"):
            self.assertIsNone(verify_refresh_token(issue_access_token(self.user)))

    def test_company_mismatch_fails_closed(self):
        token = issue_access_token(self.user)
        self.user.company = self.other_company
        self.user.save()

        with self.assertLogs("security.authentication", level="WARNING") as cm:
            self.assertIsNone(verify_access_token(token))
        self.assertTrue(any("company_mismatch" in line for line in cm.output))

    def test_deactivated_user_fails_closed(self):
        token = issue_access_token(self.user)
        self.user.is_active = False
        self.user.save()

        with self.assertLogs("security.authentication", level="WARNING"):
            self.assertIsNone(verify_access_token(token))

    def test_expired_and_garbage_tokens_fail_closed(self):
        expired = AccessToken.for_user(self.user)
        expired["companyId"] = str(self.company.id)
        expired.set_exp(lifetime=-timedelta(minutes=1))

        with self.assertLogs("security.authentication", level="WARNING"):
            self.assertIsNone(verify_access_token(str(expired)))
            self.assertIsNone(verify_access_token("not-a-jwt"))
            self.assertIsNone(verify_access_token(""))


class AuthEndpointTests(TestCase):
    def setUp(self):
        self.client = APIClient()

    def test_register_creates_company_and_admin(self):
        response = self.client.post(
            "/api/v1/auth/register/",
            {
                "email": "Owner@Shop.test",
                "password": "s3cret-pass",
                "firstName": "Sam",
                "lastName": "Owner",
                "companyName": "Sam's Repairs",
            },
            format="json",
        )

        self.assertEqual(response.status_code, 201)
        data = response.json()["data"]
        self.assertEqual(data["user"]["email"], "owner@shop.test")
        self.assertEqual(data["user"]["role"], "admin")
        self.assertTrue(data["accessToken"])
        self.assertTrue(data["refreshToken"])
        user = User.objects.get(email="owner@shop.test")
        self.assertEqual(user.company.name, "Sam's Repairs")

    def test_register_rejects_duplicate_email(self):
        company = Company.objects.create(name="Existing")
        make_user(company, "taken@shop.test")

        response = self.client.post(
            "/api/v1/auth/register/",
            {"email": "TAKEN@shop.test", "password": "s3cret-pass", "firstName": "A", "lastName": "B"},
            format="json",
        )

        self.assertEqual(response.status_code, 400)
        body = response.json()
        self.assertFalse(body["success"])
        self.assertEqual(body["error"]["message"], "Validation failed")
        self.assertIn("email", body["error"]["errors"])

    def test_login_and_me(self):
        company = Company.objects.create(name="Login Co")
        user = make_user(company, "login@shop.test", role=User.Role.MANAGER)

        response = self.client.post(
            "/api/v1/auth/login/",
            {"email": "LOGIN@shop.test", "password": "pass12345"},
            format="json",
        )

        self.assertEqual(response.status_code, 200)
        access = response.json()["data"]["accessToken"]
        self.client.credentials(HTTP_AUTHORIZATION=f"Bearer {access}")
        me = self.client.get("/api/v1/auth/me/")
        self.assertEqual(me.status_code, 200)
        self.assertEqual(me.json()["data"]["id"], str(user.id))

    def test_login_with_wrong_password_is_rejected(self):
        company = Company.objects.create(name="Login Co")
        make_user(company, "login@shop.test")

        response = self.client.post(
            "/api/v1/auth/login/",
            {"email": "login@shop.test", "password": "wrong"},
            format="json",
        )

        self.assertEqual(response.status_code, 401)
        self.assertEqual(response.json()["message"], "Invalid email or password")

    def test_refresh_issues_new_pair_and_rejects_access_token(self):
        company = Company.objects.create(name="Refresh Co")
        user = make_user(company, "refresh@shop.test")

        response = self.client.post(
            "/api/v1/auth/refresh/", {"refreshToken": issue_refresh_token(user)}, format="json"
        )
        self.assertEqual(response.status_code, 200)
        self.assertEqual(verify_access_token(response.json()["data"]["accessToken"]), user)

        with self.assertLogs("security.authentication", level="WARNING"):
            rejected = self.client.post(
                "/api/v1/auth/refresh/", {"refreshToken": issue_access_token(user)}, format="json"
            )
        self.assertEqual(rejected.status_code, 401)


class GateChainTests(TestCase):
    def setUp(self):
        self.client = APIClient()
        self.company = Company.objects.create(name="Gate Co")
        self.other_company = Company.objects.create(name="Other Co")
        self.admin = make_user(self.company, "admin@gate.test", role=User.Role.ADMIN)
        self.technician = make_user(self.company, "tech@gate.test")
        self.foreign_location = Location.objects.create(company=self.other_company, name="Elsewhere")

    def _bearer(self, user):
        self.client.credentials(HTTP_AUTHORIZATION=f"Bearer {issue_access_token(user)}")

    def test_missing_token_is_401(self):
        response = self.client.get("/api/v1/users/")

        self.assertEqual(response.status_code, 401)
        self.assertEqual(response.json()["message"], "Invalid token")

    def test_invalid_token_is_403(self):
        self.client.credentials(HTTP_AUTHORIZATION="Bearer garbage")

        with self.assertLogs("security.authentication", level="WARNING"):
            response = self.client.get("/api/v1/users/")

        self.assertEqual(response.status_code, 403)
        self.assertEqual(response.json()["message"], "Unauthorized")

    def test_other_authorization_scheme_is_treated_as_missing(self):
        self.client.credentials(HTTP_AUTHORIZATION="Basic YWRtaW46cGFzcw==")

        response = self.client.get("/api/v1/users/")

        self.assertEqual(response.status_code, 401)
        self.assertEqual(response.json()["message"], "Invalid token")

    def test_malformed_bearer_header_is_403(self):
        self.client.credentials(HTTP_AUTHORIZATION=f"Bearer {issue_access_token(self.admin)} extra")

        response = self.client.get("/api/v1/users/")

        self.assertEqual(response.status_code, 403)
        self.assertEqual(response.json()["message"], "Unauthorized")

    def test_user_without_company_is_rejected(self):
        orphan = User.objects.create_user(email="orphan@gate.test", password="pass12345", role=User.Role.ADMIN)
        self.client.force_authenticate(user=orphan)

        response = self.client.get("/api/v1/users/")

        self.assertEqual(response.status_code, 403)
        self.assertFalse(response.json()["success"])

    def test_technician_cannot_list_users_and_denial_is_logged(self):
        self._bearer(self.technician)

        with self.assertLogs("security.authorization", level="WARNING") as cm:
            response = self.client.get("/api/v1/users/")

        self.assertEqual(response.status_code, 403)
        self.assertTrue(any("permission_denied" in message for message in cm.output))

    def test_location_from_another_company_is_not_found(self):
        self._bearer(self.admin)

        response = self.client.get("/api/v1/users/", HTTP_X_LOCATION_ID=str(self.foreign_location.id))

        self.assertEqual(response.status_code, 404)
        self.assertEqual(response.json()["message"], "Location not found")


class UserManagementTests(TestCase):
    def setUp(self):
        self.client = APIClient()
        self.company = Company.objects.create(name="Users Co")
        self.other_company = Company.objects.create(name="Other Users Co")
        self.admin = make_user(self.company, "admin@users.test", role=User.Role.ADMIN)
        self.manager = make_user(self.company, "manager@users.test", role=User.Role.MANAGER)
        self.technician = make_user(self.company, "tech@users.test")
        self.outsider = make_user(self.other_company, "tech@other.test")
        self.location = Location.objects.create(company=self.company, name="Front Desk")

    def test_manager_lists_only_own_company(self):
        self.client.force_authenticate(user=self.manager)

        response = self.client.get("/api/v1/users/")

        self.assertEqual(response.status_code, 200)
        emails = {row["email"] for row in response.json()["data"]}
        self.assertIn("tech@users.test", emails)
        self.assertNotIn("tech@other.test", emails)

    def test_technicians_endpoint_returns_active_technicians(self):
        make_user(self.company, "gone@users.test", is_active=False)
        self.client.force_authenticate(user=self.technician)

        response = self.client.get("/api/v1/users/technicians/")

        self.assertEqual(response.status_code, 200)
        self.assertEqual([row["email"] for row in response.json()["data"]], ["tech@users.test"])

    def test_admin_creates_user_with_default_location(self):
        self.client.force_authenticate(user=self.admin)

        response = self.client.post(
            "/api/v1/users/",
            {
                "email": "new@users.test",
                "password": "pass12345",
                "firstName": "New",
                "lastName": "Hire",
                "role": "manager",
                "defaultLocationId": str(self.location.id),
            },
            format="json",
        )

        self.assertEqual(response.status_code, 201)
        created = User.objects.get(email="new@users.test")
        self.assertEqual(created.company_id, self.company.id)
        self.assertEqual(created.default_location_id, self.location.id)

    def test_manager_cannot_create_user(self):
        self.client.force_authenticate(user=self.manager)

        with self.assertLogs("security.authorization", level="WARNING"):
            response = self.client.post(
                "/api/v1/users/", {"email": "x@users.test", "password": "pass12345"}, format="json"
            )

        self.assertEqual(response.status_code, 403)

    def test_delete_deactivates_instead_of_removing(self):
        self.client.force_authenticate(user=self.admin)

        response = self.client.delete(f"/api/v1/users/{self.technician.id}/")

        self.assertEqual(response.status_code, 200)
        self.technician.refresh_from_db()
        self.assertFalse(self.technician.is_active)

    def test_admin_cannot_touch_user_of_another_company(self):
        self.client.force_authenticate(user=self.admin)

        response = self.client.patch(f"/api/v1/users/{self.outsider.id}/", {"role": "admin"}, format="json")

        self.assertEqual(response.status_code, 404)
        self.outsider.refresh_from_db()
        self.assertEqual(self.outsider.role, User.Role.TECHNICIAN)

    def test_admin_creates_location(self):
        self.client.force_authenticate(user=self.admin)

        response = self.client.post("/api/v1/locations/", {"name": "Warehouse"}, format="json")

        self.assertEqual(response.status_code, 201)
        self.assertTrue(Location.objects.filter(company=self.company, name="Warehouse").exists())


class SqlMigrationRunnerTests(TestCase):
    def setUp(self):
        self._tmp = tempfile.TemporaryDirectory()
        self.directory = Path(self._tmp.name)

    def tearDown(self):
        self._tmp.cleanup()

    def _write(self, name, sql):
        (self.directory / name).write_text(sql, encoding="utf-8")

    def test_second_run_applies_nothing(self):
        self._write("0002_second.sql", "CREATE TABLE runner_second (id integer);")
        self._write("0001_first.sql", "CREATE TABLE runner_first (id integer);\nCREATE INDEX runner_first_idx ON runner_first (id);")

        first = apply_sql_migrations(self.directory)
        second = apply_sql_migrations(self.directory)

        self.assertEqual(first["applied"], ["0001_first.sql", "0002_second.sql"])
        self.assertEqual(second["applied"], [])
        self.assertEqual(second["skipped"], ["0001_first.sql", "0002_second.sql"])
        self.assertEqual(SchemaMigration.objects.count(), 2)

    def test_existing_objects_count_as_applied(self):
        self._write("0001_existing.sql", "CREATE TABLE core_company (id integer);")

        with self.assertLogs("core.schema", level="WARNING"):
            result = apply_sql_migrations(self.directory)

        self.assertEqual(result["applied"], ["0001_existing.sql"])
        self.assertTrue(SchemaMigration.objects.filter(filename="0001_existing.sql").exists())

    def test_other_failures_abort_and_are_not_recorded(self):
        self._write("0001_broken.sql", "SELECT * FROM runner_table_that_does_not_exist;")

        with self.assertLogs("core.schema", level="ERROR"):
            with self.assertRaises(DatabaseError):
                apply_sql_migrations(self.directory)

        self.assertFalse(SchemaMigration.objects.exists())

    def test_changed_checksum_is_logged_and_skipped(self):
        self._write("0001_first.sql", "CREATE TABLE runner_checksum (id integer);")
        apply_sql_migrations(self.directory)
        self._write("0001_first.sql", "CREATE TABLE runner_checksum (id integer, name text);")

        with self.assertLogs("core.schema", level="WARNING") as cm:
            result = apply_sql_migrations(self.directory)

        self.assertEqual(result["skipped"], ["0001_first.sql"])
        self.assertTrue(any("checksum_changed" in line for line in cm.output))

    def test_benign_error_classification(self):
        class DuplicateTable(Exception):
            sqlstate = "42P07"

        class UndefinedTable(Exception):
            sqlstate = "42P01"

        self.assertTrue(is_benign_error(DuplicateTable("relation exists")))
        self.assertFalse(is_benign_error(UndefinedTable("relation does not exist")))
        self.assertTrue(is_benign_error(DatabaseError("index foo already exists")))

    def test_management_command_reports_counts(self):
        self._write("0001_cmd.sql", "CREATE TABLE runner_cmd (id integer);")
        out = StringIO()

        call_command("run_sql_migrations", directory=str(self.directory), stdout=out)
        call_command("run_sql_migrations", directory=str(self.directory), stdout=out)

        output = out.getvalue()
        self.assertIn("Applied 1 file(s); skipped 0.", output)
        self.assertIn("Applied 0 file(s); skipped 1.", output)


class RequestLoggingTests(TestCase):
    def test_health_check_echoes_request_id(self):
        client = APIClient()

        with self.assertLogs("api.request", level="INFO") as cm:
            response = client.get("/api/v1/healthz/", HTTP_X_REQUEST_ID="req-42")

        self.assertEqual(response.status_code, 200)
        self.assertEqual(response["X-Request-ID"], "req-42")
        self.assertEqual(response.json()["request_id"], "req-42")
        self.assertEqual(cm.records[0].request_id, "req-42")

    def test_formatter_emits_context_fields(self):
        record = logging.LogRecord("api.request", logging.INFO, __file__, 1, "request_completed", None, None)
        record.company_id = "c-1"
        record.reason = "permission_denied"

        payload = json.loads(JsonFormatter().format(record))

        self.assertEqual(payload["message"], "request_completed")
        self.assertEqual(payload["company_id"], "c-1")
        self.assertEqual(payload["reason"], "permission_denied")
        self.assertNotIn("user_id", payload)


class ProjectStartupTests(SimpleTestCase):
    """Fresh interpreters, so import order is the one a real process sees."""

    def _run(self, *args):
        env = {**os.environ, "DJANGO_SETTINGS_MODULE": "config.settings", "DJANGO_ENV": "dev"}
        return subprocess.run(
            [sys.executable, *args],
            cwd=settings.BASE_DIR,
            env=env,
            capture_output=True,
            text=True,
            timeout=120,
        )

    def test_authentication_module_imports_first(self):
        result = self._run(
            "-c",
            "import django; django.setup(); import common.authentication; "
            "from rest_framework.views import APIView; "
            "print(APIView.authentication_classes[0].__name__)",
        )

        self.assertEqual(result.returncode, 0, result.stderr)
        self.assertEqual(result.stdout.strip(), "CompanyBoundJWTAuthentication")

    def test_system_check_passes(self):
        result = self._run("manage.py", "check")

        self.assertEqual(result.returncode, 0, result.stderr)
