"""
Microsoft Graph client for the bot's directory identity.

Covers everything the provisioning flows need from Entra ID:
- App registration lookup, creation and deletion
- Client secrets (password credentials)
- Required resource access and admin consent
- Service principals
"""

import logging
from datetime import datetime, timezone
from typing import Optional, List, Dict, Any

import requests
from azure.core.exceptions import AzureError, ClientAuthenticationError

from .exceptions import AuthenticationError, RemoteCallError
from .models import AppRegistration, ClientSecret


GRAPH_BASE_URL = "https://graph.microsoft.com/v1.0"
GRAPH_SCOPE = "https://graph.microsoft.com/.default"

# Well-known ids: the Microsoft Graph API itself and its User.Read.All app role
GRAPH_API_APP_ID = "00000003-0000-0000-c000-000000000000"
USER_READ_ALL_ROLE_ID = "df021288-bdef-4463-88db-98f22de89214"


def secret_expiry(years: int, now: Optional[datetime] = None) -> datetime:
    """Return ``now`` shifted by whole years, clamping Feb 29 to Feb 28."""
    now = now or datetime.now(timezone.utc)
    try:
        return now.replace(year=now.year + years)
    except ValueError:
        return now.replace(year=now.year + years, day=28)


class GraphClient:
    """
    Thin Microsoft Graph client authenticated with an azure-identity credential.

    Usage:
        graph = GraphClient(session.credential)
        app = graph.create_application("my-bot")
        secret = graph.add_password(app.object_id, years=2)
    """

    def __init__(self, credential, http: Optional[requests.Session] = None):
        self.credential = credential
        self.http = http or requests.Session()
        self.logger = logging.getLogger(__name__)

    def _request(
        self,
        method: str,
        endpoint: str,
        data: Optional[dict] = None,
        params: Optional[dict] = None,
        allow_404: bool = False,
    ) -> Optional[dict]:
        """
        Make an authenticated request to Graph.

        Returns:
            Response JSON as dict, ``{}`` for empty bodies, or None for a 404
            when ``allow_404`` is set

        Raises:
            AuthenticationError: If no Graph token can be acquired
            RemoteCallError: On any other non-2xx response or transport failure
        """
        try:
            token = self.credential.get_token(GRAPH_SCOPE).token
        except ClientAuthenticationError as e:
            raise AuthenticationError(f"Could not acquire a Microsoft Graph token: {e.message}") from e
        except AzureError as e:
            raise RemoteCallError(f"Graph token request failed: {e.message}") from e

        url = f"{GRAPH_BASE_URL}{endpoint}"

        try:
            response = self.http.request(
                method,
                url,
                json=data,
                params=params,
                headers={"Authorization": f"Bearer {token}"},
                timeout=30,
            )
        except requests.RequestException as e:
            raise RemoteCallError(f"Graph request {method} {endpoint} failed: {e}") from e

        if response.status_code == 404 and allow_404:
            return None

        if response.status_code >= 400:
            try:
                message = response.json().get("error", {}).get("message", response.text)
            except ValueError:
                message = response.text
            self.logger.error(f"Graph {method} {endpoint} returned {response.status_code}: {message}")
            raise RemoteCallError(
                f"Graph API error ({response.status_code}): {message}",
                status_code=response.status_code,
            )

        if response.status_code == 204 or not response.content:
            return {}
        return response.json()

    @staticmethod
    def _to_app(data: Dict[str, Any]) -> AppRegistration:
        return AppRegistration(
            app_id=data["appId"],
            object_id=data["id"],
            display_name=data.get("displayName", ""),
        )

    # ========== Signed-in user ==========

    def get_signed_in_user(self) -> Optional[str]:
        """Return the signed-in user's UPN, or None for app-only credentials."""
        try:
            me = self._request("GET", "/me", params={"$select": "userPrincipalName"})
        except RemoteCallError:
            return None
        return me.get("userPrincipalName")

    # ========== Applications ==========

    def find_applications(self, display_name: str) -> List[AppRegistration]:
        """List app registrations whose display name equals ``display_name``."""
        escaped = display_name.replace("'", "''")
        result = self._request(
            "GET",
            "/applications",
            params={
                "$filter": f"displayName eq '{escaped}'",
                "$select": "id,appId,displayName",
            },
        )
        return [self._to_app(item) for item in result.get("value", [])]

    def get_application_by_app_id(self, app_id: str) -> Optional[AppRegistration]:
        data = self._request(
            "GET",
            f"/applications(appId='{app_id}')",
            params={"$select": "id,appId,displayName"},
            allow_404=True,
        )
        return self._to_app(data) if data else None

    def create_application(self, display_name: str) -> AppRegistration:
        """Register a single-tenant application."""
        data = self._request(
            "POST",
            "/applications",
            data={"displayName": display_name, "signInAudience": "AzureADMyOrg"},
        )
        app = self._to_app(data)
        self.logger.info(f"Created app registration {display_name} ({app.app_id})")
        return app

    def delete_application(self, object_id: str):
        self._request("DELETE", f"/applications/{object_id}")
        self.logger.info(f"Deleted app registration object {object_id}")

    # ========== Secrets ==========

    def add_password(self, object_id: str, years: int, display_name: str = "bot-secret") -> ClientSecret:
        """
        Append a new client secret. Existing secrets stay valid.

        Args:
            object_id: Application object id (not the appId)
            years: Validity window in whole years
            display_name: Label shown in the portal

        Returns:
            ClientSecret including the plaintext value, which Graph never
            returns again
        """
        end = secret_expiry(years)
        data = self._request(
            "POST",
            f"/applications/{object_id}/addPassword",
            data={
                "passwordCredential": {
                    "displayName": display_name,
                    "endDateTime": end.strftime("%Y-%m-%dT%H:%M:%SZ"),
                }
            },
        )
        return ClientSecret(
            key_id=data["keyId"],
            secret_text=data["secretText"],
            end_date_time=data.get("endDateTime") or end,
        )

    # ========== Permissions ==========

    def add_required_permission(
        self,
        object_id: str,
        resource_app_id: str = GRAPH_API_APP_ID,
        permission_id: str = USER_READ_ALL_ROLE_ID,
        permission_type: str = "Role",
    ) -> bool:
        """
        Declare a required permission on the application.

        Returns:
            False if the permission was already declared, True if it was added
        """
        app = self._request("GET", f"/applications/{object_id}", params={"$select": "requiredResourceAccess"})
        required = app.get("requiredResourceAccess", [])

        entry = next((r for r in required if r.get("resourceAppId") == resource_app_id), None)
        if entry is None:
            entry = {"resourceAppId": resource_app_id, "resourceAccess": []}
            required.append(entry)

        if any(a.get("id") == permission_id for a in entry["resourceAccess"]):
            return False

        entry["resourceAccess"].append({"id": permission_id, "type": permission_type})
        self._request("PATCH", f"/applications/{object_id}", data={"requiredResourceAccess": required})
        return True

    # ========== Service principals ==========

    def get_service_principal(self, app_id: str) -> Optional[Dict[str, Any]]:
        result = self._request(
            "GET",
            "/servicePrincipals",
            params={"$filter": f"appId eq '{app_id}'", "$select": "id,appId,displayName"},
        )
        values = result.get("value", [])
        return values[0] if values else None

    def ensure_service_principal(self, app_id: str) -> Dict[str, Any]:
        """Return the service principal for ``app_id``, creating it if missing."""
        existing = self.get_service_principal(app_id)
        if existing:
            return existing
        return self._request("POST", "/servicePrincipals", data={"appId": app_id})

    def grant_admin_consent(
        self,
        app_id: str,
        resource_app_id: str = GRAPH_API_APP_ID,
        app_role_id: str = USER_READ_ALL_ROLE_ID,
    ):
        """
        Grant tenant-wide admin consent for an application permission.

        Raises:
            RemoteCallError: If either service principal is missing or the
                caller lacks the directory role to assign app roles
        """
        principal = self.get_service_principal(app_id)
        resource = self.get_service_principal(resource_app_id)
        if principal is None or resource is None:
            raise RemoteCallError(f"Service principal missing for {app_id if principal is None else resource_app_id}")

        assignments = self._request(
            "GET",
            f"/servicePrincipals/{principal['id']}/appRoleAssignments",
        )
        for assignment in assignments.get("value", []):
            if assignment.get("resourceId") == resource["id"] and assignment.get("appRoleId") == app_role_id:
                return

        self._request(
            "POST",
            f"/servicePrincipals/{resource['id']}/appRoleAssignedTo",
            data={
                "principalId": principal["id"],
                "resourceId": resource["id"],
                "appRoleId": app_role_id,
            },
        )
