import logging
from typing import Any, Optional

import httpx

from ptw.client.cache import QueryCache, ResourceChanged, resource

logger = logging.getLogger("ptw.client")


class PtwClientError(Exception):
    pass


class ApiError(PtwClientError):
    def __init__(self, status_code: int, body: str):
        super().__init__(f"API Error: {status_code} - {body}")
        self.status_code = status_code
        self.body = body


class PermitApiClient:
    """Synchronous client for the permit-to-work HTTP API.

    Reads go through an optional ``QueryCache``; every mutation publishes the
    resources it touched so only dependent queries are refetched.
    """

    def __init__(
        self,
        base_url: str,
        token: Optional[str] = None,
        cache: Optional[QueryCache] = None,
        transport: Optional[httpx.BaseTransport] = None,
        timeout: float = 30.0,
    ) -> None:
        self.cache = cache
        self._client = httpx.Client(base_url=base_url.rstrip("/"), timeout=timeout, transport=transport)
        if token:
            self.set_token(token)

    def __enter__(self) -> "PermitApiClient":
        return self

    def __exit__(self, *exc) -> None:
        self.close()

    def close(self) -> None:
        self._client.close()

    def set_token(self, token: str) -> None:
        self._client.headers["Authorization"] = f"Bearer {token}"

    def request(self, method: str, path: str, **kwargs) -> Any:
        res = self._client.request(method, path, **kwargs)
        if res.status_code >= 400:
            logger.debug("api error method=%s path=%s status=%s", method, path, res.status_code)
            raise ApiError(res.status_code, res.text or res.reason_phrase)
        if res.status_code == 204 or not res.content:
            return None
        if res.headers.get("content-type", "").startswith("application/json"):
            return res.json()
        return res.content

    def _query(self, key: tuple, path: str, depends_on: list, params: Optional[dict] = None) -> Any:
        if self.cache is None:
            return self.request("GET", path, params=params)
        return self.cache.fetch(key, lambda: self.request("GET", path, params=params), depends_on)

    def _changed(self, *events: ResourceChanged) -> None:
        if self.cache is None:
            return
        for event in events:
            self.cache.publish(event)

    # Auth

    def login(self, username: str, password: str) -> dict:
        data = self.request("POST", "/api/auth/login", json={"username": username, "password": password})
        self.set_token(data["access_token"])
        if self.cache is not None:
            self.cache.clear()
        return data

    def current_user(self) -> dict:
        return self.request("GET", "/api/auth/user")

    # Permits

    def list_permits(self, status: Optional[str] = None) -> list[dict]:
        params = {"status": status} if status else None
        return self._query(("permits", status), "/api/permits", [resource("permit")], params)

    def get_permit(self, permit_id: int) -> dict:
        return self._query(("permit", permit_id), f"/api/permits/{permit_id}", [resource("permit", permit_id)])

    def get_stats(self) -> dict:
        return self._query(("permits", "stats"), "/api/permits/stats", [resource("permit")])

    def get_permit_map(self, status: Optional[str] = None, work_location_id: Optional[int] = None) -> list[dict]:
        params = {}
        if status:
            params["status"] = status
        if work_location_id is not None:
            params["workLocationId"] = work_location_id
        return self._query(
            ("permits", "map", status, work_location_id),
            "/api/permits/map",
            [resource("permit")],
            params or None,
        )

    def get_actions(self, permit_id: int) -> list[dict]:
        return self._query(
            ("permit", permit_id, "actions"),
            f"/api/permits/{permit_id}/actions",
            [resource("permit", permit_id)],
        )

    def create_permit(self, data: dict) -> dict:
        permit = self.request("POST", "/api/permits", json=data)
        self._changed(ResourceChanged("permit"))
        return permit

    def update_permit(self, permit_id: int, data: dict) -> dict:
        permit = self.request("PATCH", f"/api/permits/{permit_id}", json=data)
        self._changed(ResourceChanged("permit", permit_id))
        return permit

    def delete_permit(self, permit_id: int) -> None:
        self.request("DELETE", f"/api/permits/{permit_id}")
        self._changed(ResourceChanged("permit", permit_id), ResourceChanged("suggestions", permit_id))

    def workflow_action(self, permit_id: int, action: str, next_status: str, reason: Optional[str] = None) -> dict:
        body = {"action": action, "nextStatus": next_status}
        if reason is not None:
            body["reason"] = reason
        permit = self.request("POST", f"/api/permits/{permit_id}/workflow", json=body)
        self._changed(ResourceChanged("permit", permit_id))
        return permit

    def approve(self, permit_id: int, approval_type: str) -> dict:
        permit = self.request("POST", f"/api/permits/{permit_id}/approve", json={"approvalType": approval_type})
        self._changed(ResourceChanged("permit", permit_id))
        return permit

    def reject(self, permit_id: int, reason: str) -> dict:
        permit = self.request("POST", f"/api/permits/{permit_id}/reject", json={"reason": reason})
        self._changed(ResourceChanged("permit", permit_id))
        return permit

    # AI analysis and suggestions

    def analyze_permit(self, permit_id: int) -> dict:
        return self.request("POST", f"/api/permits/{permit_id}/analyze")

    def get_analysis(self, permit_id: int) -> dict:
        return self.request("GET", f"/api/permits/{permit_id}/analysis")

    def list_suggestions(self, permit_id: int) -> list[dict]:
        return self._query(
            ("suggestions", permit_id),
            f"/api/permits/{permit_id}/suggestions",
            [resource("suggestions", permit_id)],
        )

    def get_diff(self, permit_id: int, batch_id: str) -> dict:
        return self.request("GET", f"/api/permits/{permit_id}/diff/{batch_id}")

    def set_suggestion_status(self, suggestion_id: int, status: str) -> dict:
        suggestion = self.request("PATCH", f"/api/suggestions/{suggestion_id}/status", json={"status": status})
        self._changed(ResourceChanged("suggestions", suggestion["permitId"]))
        return suggestion

    def apply_suggestion(self, suggestion_id: int) -> dict:
        suggestion = self.request("POST", f"/api/suggestions/{suggestion_id}/apply")
        permit_id = suggestion["permitId"]
        self._changed(ResourceChanged("suggestions", permit_id), ResourceChanged("permit", permit_id))
        return suggestion

    def apply_all_suggestions(self, permit_id: int) -> int:
        data = self.request("POST", f"/api/permits/{permit_id}/suggestions/apply-all")
        self._changed(ResourceChanged("suggestions", permit_id), ResourceChanged("permit", permit_id))
        return data["appliedCount"]

    def reject_all_suggestions(self, permit_id: int) -> int:
        data = self.request("POST", f"/api/permits/{permit_id}/suggestions/reject-all")
        self._changed(ResourceChanged("suggestions", permit_id))
        return data["rejectedCount"]

    def delete_all_suggestions(self, permit_id: int) -> int:
        data = self.request("DELETE", f"/api/permits/{permit_id}/suggestions")
        self._changed(ResourceChanged("suggestions", permit_id))
        return data["deletedCount"]

    def list_webhook_configs(self) -> list[dict]:
        return self.request("GET", "/api/webhook-configs")

    # Reference data

    def list_users(self, role_list: Optional[str] = None) -> list[dict]:
        path = f"/api/users/{role_list}" if role_list else "/api/users"
        return self._query(("users", role_list), path, [resource("user")])

    def active_work_locations(self) -> list[dict]:
        return self._query(("work-locations", "active"), "/api/work-locations/active", [resource("work-location")])

    def map_backgrounds(self) -> list[dict]:
        return self._query(("map-backgrounds",), "/api/map-backgrounds", [resource("map-background")])

    def trbs_hazards(self) -> dict:
        return self._query(("trbs-hazards",), "/api/trbs-hazards", [])

    def get_settings(self) -> dict:
        return self._query(("settings",), "/api/settings", [resource("settings")])

    def update_settings(self, fields: dict, logo: Optional[tuple] = None) -> dict:
        files = {"logo": logo} if logo else None
        data = self.request("PUT", "/api/settings", data=fields, files=files)
        self._changed(ResourceChanged("settings"))
        return data
