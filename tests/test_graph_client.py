"""
Tests for the Microsoft Graph client (HTTP layer mocked).
"""

from datetime import datetime, timezone
from unittest.mock import MagicMock

import pytest
import requests
from azure.core.exceptions import ClientAuthenticationError, ServiceRequestError

from teams_bot_provisioner.exceptions import AuthenticationError, RemoteCallError
from teams_bot_provisioner.graph_client import (
    GRAPH_API_APP_ID,
    USER_READ_ALL_ROLE_ID,
    GraphClient,
    secret_expiry,
)


def _response(status_code=200, payload=None, text=""):
    response = MagicMock()
    response.status_code = status_code
    response.content = b"{}" if payload is not None else b""
    response.text = text
    response.json.return_value = payload if payload is not None else {}
    return response


@pytest.fixture
def http():
    return MagicMock(spec=requests.Session)


@pytest.fixture
def graph(http):
    credential = MagicMock()
    credential.get_token.return_value = MagicMock(token="graph-token")
    return GraphClient(credential, http=http)


def _last_call(http):
    args, kwargs = http.request.call_args
    return args[0], args[1], kwargs


class TestRequestHandling:

    def test_bearer_token_sent(self, graph, http):
        http.request.return_value = _response(200, {"value": []})

        graph.find_applications("acme-bot")

        _method, _url, kwargs = _last_call(http)
        assert kwargs["headers"]["Authorization"] == "Bearer graph-token"
        graph.credential.get_token.assert_called_with("https://graph.microsoft.com/.default")

    def test_error_message_extracted(self, graph, http):
        http.request.return_value = _response(
            403, {"error": {"code": "Authorization_RequestDenied", "message": "Insufficient privileges"}}
        )

        with pytest.raises(RemoteCallError) as exc_info:
            graph.create_application("acme-bot")

        assert exc_info.value.status_code == 403
        assert "Insufficient privileges" in str(exc_info.value)

    def test_transport_error_wrapped(self, graph, http):
        http.request.side_effect = requests.ConnectionError("dns failure")

        with pytest.raises(RemoteCallError, match="dns failure"):
            graph.find_applications("acme-bot")

    def test_token_failure_is_authentication_error(self, graph, http):
        graph.credential.get_token.side_effect = ClientAuthenticationError("token refresh failed")

        with pytest.raises(AuthenticationError, match="token refresh failed"):
            graph.find_applications("acme-bot")
        http.request.assert_not_called()

    def test_token_transport_failure_wrapped(self, graph, http):
        graph.credential.get_token.side_effect = ServiceRequestError("login.microsoftonline.com unreachable")

        with pytest.raises(RemoteCallError):
            graph.find_applications("acme-bot")

    def test_no_content(self, graph, http):
        http.request.return_value = _response(204)
        graph.delete_application("obj-1")
        method, url, _kwargs = _last_call(http)
        assert method == "DELETE"
        assert url.endswith("/applications/obj-1")


class TestApplications:

    def test_find_filters_by_display_name(self, graph, http):
        http.request.return_value = _response(
            200, {"value": [{"id": "obj-1", "appId": "app-1", "displayName": "acme-bot"}]}
        )

        apps = graph.find_applications("acme-bot")

        assert [a.app_id for a in apps] == ["app-1"]
        _method, _url, kwargs = _last_call(http)
        assert kwargs["params"]["$filter"] == "displayName eq 'acme-bot'"

    def test_find_none(self, graph, http):
        http.request.return_value = _response(200, {"value": []})
        assert graph.find_applications("acme-bot") == []

    def test_create_single_tenant(self, graph, http):
        http.request.return_value = _response(
            201, {"id": "obj-1", "appId": "app-1", "displayName": "acme-bot"}
        )

        app = graph.create_application("acme-bot")

        assert (app.app_id, app.object_id) == ("app-1", "obj-1")
        _method, _url, kwargs = _last_call(http)
        assert kwargs["json"] == {"displayName": "acme-bot", "signInAudience": "AzureADMyOrg"}

    def test_get_by_app_id_missing(self, graph, http):
        http.request.return_value = _response(404, {"error": {"message": "not found"}})
        assert graph.get_application_by_app_id("app-1") is None

    def test_get_by_app_id(self, graph, http):
        http.request.return_value = _response(200, {"id": "obj-1", "appId": "app-1", "displayName": "x"})
        app = graph.get_application_by_app_id("app-1")
        assert app.object_id == "obj-1"
        _method, url, _kwargs = _last_call(http)
        assert url.endswith("/applications(appId='app-1')")


class TestSecrets:

    def test_add_password(self, graph, http):
        http.request.return_value = _response(
            200,
            {"keyId": "key-1", "secretText": "plain", "endDateTime": "2028-10-17T12:00:00.123Z"},
        )

        secret = graph.add_password("obj-1", years=2)

        assert secret.secret_text == "plain"
        assert secret.end_date_time == datetime(2028, 10, 17, 12, 0, 0, 123000, tzinfo=timezone.utc)
        method, url, kwargs = _last_call(http)
        assert method == "POST"
        assert url.endswith("/applications/obj-1/addPassword")
        assert "endDateTime" in kwargs["json"]["passwordCredential"]

    def test_expiry_adds_years(self):
        now = datetime(2026, 10, 17, tzinfo=timezone.utc)
        assert secret_expiry(2, now) == datetime(2028, 10, 17, tzinfo=timezone.utc)

    def test_expiry_leap_day(self):
        now = datetime(2028, 2, 29, tzinfo=timezone.utc)
        assert secret_expiry(1, now) == datetime(2029, 2, 28, tzinfo=timezone.utc)


class TestPermissions:

    def test_adds_graph_entry(self, graph, http):
        http.request.side_effect = [
            _response(200, {"requiredResourceAccess": []}),
            _response(204),
        ]

        assert graph.add_required_permission("obj-1") is True

        method, _url, kwargs = _last_call(http)
        assert method == "PATCH"
        assert kwargs["json"]["requiredResourceAccess"] == [
            {
                "resourceAppId": GRAPH_API_APP_ID,
                "resourceAccess": [{"id": USER_READ_ALL_ROLE_ID, "type": "Role"}],
            }
        ]

    def test_keeps_existing_entries(self, graph, http):
        other = {"resourceAppId": "other-api", "resourceAccess": [{"id": "x", "type": "Scope"}]}
        http.request.side_effect = [
            _response(200, {"requiredResourceAccess": [other]}),
            _response(204),
        ]

        graph.add_required_permission("obj-1")

        _method, _url, kwargs = _last_call(http)
        assert kwargs["json"]["requiredResourceAccess"][0] == other
        assert len(kwargs["json"]["requiredResourceAccess"]) == 2

    def test_already_declared(self, graph, http):
        http.request.return_value = _response(
            200,
            {
                "requiredResourceAccess": [
                    {
                        "resourceAppId": GRAPH_API_APP_ID,
                        "resourceAccess": [{"id": USER_READ_ALL_ROLE_ID, "type": "Role"}],
                    }
                ]
            },
        )

        assert graph.add_required_permission("obj-1") is False
        assert http.request.call_count == 1


class TestServicePrincipals:

    def test_existing_principal_reused(self, graph, http):
        http.request.return_value = _response(200, {"value": [{"id": "sp-1", "appId": "app-1"}]})

        assert graph.ensure_service_principal("app-1")["id"] == "sp-1"
        assert http.request.call_count == 1

    def test_missing_principal_created(self, graph, http):
        http.request.side_effect = [
            _response(200, {"value": []}),
            _response(201, {"id": "sp-new", "appId": "app-1"}),
        ]

        assert graph.ensure_service_principal("app-1")["id"] == "sp-new"
        method, _url, kwargs = _last_call(http)
        assert method == "POST"
        assert kwargs["json"] == {"appId": "app-1"}


class TestAdminConsent:

    def test_assigns_app_role(self, graph, http):
        http.request.side_effect = [
            _response(200, {"value": [{"id": "sp-bot"}]}),
            _response(200, {"value": [{"id": "sp-graph"}]}),
            _response(200, {"value": []}),
            _response(201, {"id": "assignment"}),
        ]

        graph.grant_admin_consent("app-1")

        method, url, kwargs = _last_call(http)
        assert method == "POST"
        assert url.endswith("/servicePrincipals/sp-graph/appRoleAssignedTo")
        assert kwargs["json"] == {
            "principalId": "sp-bot",
            "resourceId": "sp-graph",
            "appRoleId": USER_READ_ALL_ROLE_ID,
        }

    def test_existing_assignment_is_noop(self, graph, http):
        http.request.side_effect = [
            _response(200, {"value": [{"id": "sp-bot"}]}),
            _response(200, {"value": [{"id": "sp-graph"}]}),
            _response(200, {"value": [{"resourceId": "sp-graph", "appRoleId": USER_READ_ALL_ROLE_ID}]}),
        ]

        graph.grant_admin_consent("app-1")

        assert http.request.call_count == 3

    def test_missing_principal_fails(self, graph, http):
        http.request.return_value = _response(200, {"value": []})

        with pytest.raises(RemoteCallError):
            graph.grant_admin_consent("app-1")

    def test_forbidden_surfaces(self, graph, http):
        http.request.side_effect = [
            _response(200, {"value": [{"id": "sp-bot"}]}),
            _response(200, {"value": [{"id": "sp-graph"}]}),
            _response(200, {"value": []}),
            _response(403, {"error": {"message": "Authorization_RequestDenied"}}),
        ]

        with pytest.raises(RemoteCallError) as exc_info:
            graph.grant_admin_consent("app-1")
        assert exc_info.value.status_code == 403


class TestSignedInUser:

    def test_user_principal_name(self, graph, http):
        http.request.return_value = _response(200, {"userPrincipalName": "admin@contoso.com"})
        assert graph.get_signed_in_user() == "admin@contoso.com"

    def test_app_only_credential(self, graph, http):
        http.request.return_value = _response(400, {"error": {"message": "/me requires delegated auth"}})
        assert graph.get_signed_in_user() is None
