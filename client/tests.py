from unittest import TestCase
from unittest.mock import MagicMock

import requests

from client.api import ApiClient, ApiError, SessionContext, normalize_base_url
from client.reporting import get_dashboard_stats, get_revenue_over_time


def fake_response(status_code=200, payload=None):
    response = MagicMock(spec=requests.Response)
    response.status_code = status_code
    response.ok = status_code < 400
    if payload is None:
        response.json.side_effect = ValueError("no body")
    else:
        response.json.return_value = payload
    return response


class ClientTestCase(TestCase):
    def setUp(self):
        self.session = MagicMock(spec=requests.Session)
        self.redirects = []
        self.client = ApiClient("http://shop.test/", on_auth_failure=self.redirects.append, session=self.session)
        self.context = SessionContext(access_token="access-1", refresh_token="refresh-1")

    def respond(self, status_code=200, payload=None):
        self.session.request.return_value = fake_response(status_code, payload)

    def sent(self):
        args, kwargs = self.session.request.call_args
        return args[0], args[1], kwargs


class BaseUrlTests(TestCase):
    def test_prefix_is_appended_once(self):
        self.assertEqual(normalize_base_url("http://shop.test"), "http://shop.test/api/v1")
        self.assertEqual(normalize_base_url("http://shop.test/api/v1/"), "http://shop.test/api/v1")


class RequestTests(ClientTestCase):
    def test_bearer_token_comes_from_the_context(self):
        self.respond(payload={"success": True, "data": []})

        self.client.list_tickets(self.context, status="new")

        method, url, kwargs = self.sent()
        self.assertEqual(method, "GET")
        self.assertEqual(url, "http://shop.test/api/v1/tickets/")
        self.assertEqual(kwargs["headers"]["Authorization"], "Bearer access-1")
        self.assertEqual(kwargs["params"], {"status": "new"})

    def test_contexts_do_not_share_tokens(self):
        self.respond(payload={"success": True, "data": {}})
        other = SessionContext(access_token="access-2")

        self.client.get_current_user(other)

        self.assertEqual(self.sent()[2]["headers"]["Authorization"], "Bearer access-2")
        self.assertEqual(self.context.access_token, "access-1")

    def test_auth_failure_clears_context_and_redirects(self):
        for status_code in (401, 403):
            with self.subTest(status_code=status_code):
                context = SessionContext(access_token="stale", refresh_token="stale")
                self.respond(status_code, {"success": False, "message": "Unauthorized", "error": {"message": "Unauthorized"}})

                with self.assertRaises(ApiError) as raised:
                    self.client.get_technicians(context)

                self.assertEqual(raised.exception.status_code, status_code)
                self.assertFalse(context.is_authenticated)
                self.assertIsNone(context.refresh_token)
        self.assertEqual(self.redirects, [401, 403])

    def test_error_envelope_becomes_api_error(self):
        self.respond(400, {"success": False, "error": {"message": "Validation failed", "errors": {"quantity": ["bad"]}}})

        with self.assertRaises(ApiError) as raised:
            self.client.create_transfer(self.context, {"quantity": 0}, location_id="loc-1")

        self.assertEqual(raised.exception.message, "Validation failed")
        self.assertIn("quantity", raised.exception.errors)
        self.assertEqual(self.sent()[2]["headers"]["X-Location-ID"], "loc-1")
        self.assertEqual(self.redirects, [])

    def test_non_json_failure_reports_status(self):
        self.respond(502)

        with self.assertRaises(ApiError) as raised:
            self.client.get_ticket(self.context, "t-1")

        self.assertEqual(raised.exception.message, "HTTP 502")

    def test_transfer_actions_post_to_action_routes(self):
        self.respond(payload={"success": True, "data": {"status": "completed"}})

        result = self.client.complete_transfer(self.context, "tr-1")

        method, url, _ = self.sent()
        self.assertEqual((method, url), ("POST", "http://shop.test/api/v1/inventory-transfers/tr-1/complete/"))
        self.assertEqual(result.data["status"], "completed")


class AuthFlowTests(ClientTestCase):
    def test_login_stores_tokens(self):
        context = SessionContext()
        self.respond(payload={"success": True, "data": {"user": {"id": "u1"}, "accessToken": "a", "refreshToken": "r"}})

        data = self.client.login(context, "admin@shop.test", "secret")

        self.assertEqual(data["user"]["id"], "u1")
        self.assertEqual((context.access_token, context.refresh_token), ("a", "r"))
        self.assertNotIn("Authorization", self.sent()[2]["headers"])

    def test_failed_login_does_not_redirect(self):
        context = SessionContext()
        self.respond(401, {"success": False, "error": {"message": "Invalid email or password"}})

        with self.assertRaises(ApiError) as raised:
            self.client.login(context, "admin@shop.test", "wrong")

        self.assertEqual(raised.exception.message, "Invalid email or password")
        self.assertEqual(self.redirects, [])

    def test_refresh_rotates_tokens(self):
        self.respond(payload={"success": True, "data": {"accessToken": "a2", "refreshToken": "r2"}})

        self.client.refresh(self.context)

        self.assertEqual(self.sent()[2]["json"], {"refreshToken": "refresh-1"})
        self.assertEqual((self.context.access_token, self.context.refresh_token), ("a2", "r2"))

    def test_refresh_without_token_fails_locally(self):
        with self.assertRaises(ApiError):
            self.client.refresh(SessionContext())
        self.session.request.assert_not_called()

    def test_logout_clears_context(self):
        self.client.logout(self.context)

        self.assertFalse(self.context.is_authenticated)


class ReportingClientTests(ClientTestCase):
    def test_dashboard_stats_omits_empty_filters(self):
        stats = {"monthlyRevenue": 0, "lowStockCount": 2, "activeTickets": 3, "totalCustomers": 4}
        self.respond(payload={"success": True, "data": stats})

        result = get_dashboard_stats(self.client, self.context, location_id="loc-1")

        self.assertEqual(result.data, stats)
        self.assertEqual(self.sent()[2]["params"], {"locationId": "loc-1"})

    def test_revenue_over_time_sends_grouping(self):
        self.respond(payload={"success": True, "data": [{"date": "2024-03-01", "revenue": 45.0}]})

        result = get_revenue_over_time(self.client, self.context, "2024-03-01", "2024-03-31", group_by="month")

        _, url, kwargs = self.sent()
        self.assertEqual(url, "http://shop.test/api/v1/reporting/revenue-over-time/")
        self.assertEqual(kwargs["params"], {"startDate": "2024-03-01", "endDate": "2024-03-31", "groupBy": "month"})
        self.assertEqual(result.data[0]["revenue"], 45.0)

    def test_unknown_grouping_is_rejected_before_sending(self):
        with self.assertRaises(ValueError):
            get_revenue_over_time(self.client, self.context, "2024-03-01", "2024-03-31", group_by="year")
        self.session.request.assert_not_called()
