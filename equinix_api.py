"""Equinix colocation API client for live patch panel availability."""

import os
from datetime import datetime, timedelta, timezone
from typing import Any, Dict, List, Optional, Set

import requests
from dotenv import load_dotenv
from loguru import logger

load_dotenv()

EQUINIX_CLIENT_ID = os.getenv("EQUINIX_CLIENT_ID", "")
EQUINIX_CLIENT_SECRET = os.getenv("EQUINIX_CLIENT_SECRET", "")
EQUINIX_ENV = os.getenv("EQUINIX_ENV", "production")
REQUEST_TIMEOUT = float(os.getenv("REQUEST_TIMEOUT", 15))

PRODUCTION_URL = "https://api.equinix.com"
SANDBOX_URL = "https://sandboxapi.equinix.com"

# Known panels whose size the API does not report.
KNOWN_PANEL_SIZES = {"PP:0201:0102:1374601": 12}
MIN_INFERRED_PORTS = 12
MAX_INFERRED_PORTS = 24

TOKEN_REFRESH_MARGIN = 60


class AvailabilityFetchError(Exception):
    """Live availability could not be fetched.

    ``reason`` is one of ``auth``, ``http``, ``network`` or ``format`` so
    callers never mistake a failed fetch for a panel with no free ports.
    """

    def __init__(self, message: str, reason: str = "http", status_code: Optional[int] = None):
        super().__init__(message)
        self.reason = reason
        self.status_code = status_code


def _max_ports(data: Dict[str, Any], available: List[int]) -> int:
    if data.get("maxPorts"):
        try:
            return int(data["maxPorts"])
        except (TypeError, ValueError):
            raise AvailabilityFetchError(f"invalid maxPorts: {data['maxPorts']!r}", reason="format") from None
    panel_id = data.get("patchPanelId") or data.get("id")
    if panel_id in KNOWN_PANEL_SIZES:
        return KNOWN_PANEL_SIZES[panel_id]
    return min(max(available + [MIN_INFERRED_PORTS]), MAX_INFERRED_PORTS)


def _port_numbers(raw: Any) -> List[int]:
    if raw is None:
        return []
    if not isinstance(raw, list):
        raise AvailabilityFetchError("availablePorts is not a list", reason="format")
    ports = []
    for value in raw:
        try:
            ports.append(int(value))
        except (TypeError, ValueError):
            raise AvailabilityFetchError(f"invalid port number: {value!r}", reason="format")
    return ports


def transform_patch_panel(data: Dict[str, Any], now: Optional[datetime] = None) -> Dict[str, Any]:
    """Shape an Equinix patch panel payload into our panel dict."""
    if not isinstance(data, dict):
        raise AvailabilityFetchError("patch panel payload is not an object", reason="format")
    if now is None:
        now = datetime.now(timezone.utc)

    available = _port_numbers(data.get("availablePorts"))
    ports = []
    if isinstance(data.get("connectionServices"), list):
        for number in range(1, _max_ports(data, available) + 1):
            ports.append(
                {
                    "portNumber": number,
                    "status": "available" if number in available else "occupied",
                    "mediaType": data.get("dedicatedMediaType"),
                    "speed": "10G",
                    "connectorType": "LC",
                }
            )

    return {
        "patchPanelId": data.get("patchPanelId") or data.get("id"),
        "ibx": data.get("ibx"),
        "cageId": data.get("cageId"),
        "cabinetId": data.get("cabinetId"),
        "accountNumber": data.get("accountNumber"),
        "accountName": data.get("accountName"),
        "dedicatedMediaType": data.get("dedicatedMediaType"),
        "type": data.get("type"),
        "availablePorts": available,
        "ports": ports,
        "lastUpdated": now.strftime("%Y-%m-%dT%H:%M:%SZ"),
    }


class EquinixClient:
    """OAuth2 client-credentials session against the Equinix API."""

    def __init__(
        self,
        client_id: str = "",
        client_secret: str = "",
        environment: str = "production",
        session: Optional[requests.Session] = None,
        timeout: float = REQUEST_TIMEOUT,
    ):
        self.client_id = client_id
        self.client_secret = client_secret
        self.base_url = SANDBOX_URL if environment == "sandbox" else PRODUCTION_URL
        self.auth_url = f"{self.base_url}/oauth2/v1/token"
        self.session = session or requests.Session()
        self.timeout = timeout
        self._access_token: Optional[str] = None
        self._expires_at: Optional[datetime] = None

    def _authenticate(self) -> None:
        if not self.client_id or not self.client_secret:
            raise AvailabilityFetchError("Equinix credentials are not configured", reason="auth")
        try:
            response = self.session.post(
                self.auth_url,
                data={
                    "grant_type": "client_credentials",
                    "client_id": self.client_id,
                    "client_secret": self.client_secret,
                },
                headers={"Content-Type": "application/x-www-form-urlencoded"},
                timeout=self.timeout,
            )
        except requests.exceptions.RequestException as e:
            raise AvailabilityFetchError(f"Equinix authentication request failed: {e}", reason="network") from e

        if response.status_code != 200:
            logger.error(f"Equinix authentication failed: {response.status_code}")
            raise AvailabilityFetchError(
                "Equinix authentication failed", reason="auth", status_code=response.status_code
            )
        try:
            data = response.json()
            token = data["access_token"]
        except (ValueError, KeyError, TypeError) as e:
            raise AvailabilityFetchError("Equinix token response is malformed", reason="auth") from e

        expires_in = int(data.get("expires_in") or 3600)
        self._access_token = token
        self._expires_at = datetime.now(timezone.utc) + timedelta(seconds=expires_in - TOKEN_REFRESH_MARGIN)

    def _ensure_token(self) -> str:
        now = datetime.now(timezone.utc)
        if not self._access_token or not self._expires_at or now >= self._expires_at:
            self._authenticate()
        return self._access_token

    def _get(self, path: str, params: Optional[Dict[str, str]] = None) -> Any:
        token = self._ensure_token()
        url = f"{self.base_url}{path}"
        try:
            response = self.session.get(
                url,
                params=params,
                headers={"Authorization": f"Bearer {token}", "Content-Type": "application/json"},
                timeout=self.timeout,
            )
        except requests.exceptions.RequestException as e:
            raise AvailabilityFetchError(f"Request to {url} failed: {e}", reason="network") from e

        logger.debug(f"Equinix {path} - status {response.status_code}")
        if response.status_code != 200:
            raise AvailabilityFetchError(
                f"Equinix returned {response.status_code} for {path}",
                reason="http",
                status_code=response.status_code,
            )
        try:
            return response.json()
        except ValueError as e:
            raise AvailabilityFetchError(f"Equinix returned invalid JSON for {path}", reason="format") from e

    def get_patch_panel(self, patch_panel_id: str) -> Dict[str, Any]:
        data = self._get(f"/colocations/v2/patchPanels/{patch_panel_id}")
        return transform_patch_panel(data)

    def list_patch_panels(self, cabinet_id: str, account_number: str) -> List[Dict[str, Any]]:
        data = self._get(
            "/colocations/v2/patchPanels",
            params={"cabinetId": cabinet_id, "accountNumber": account_number},
        )
        if not isinstance(data, list):
            raise AvailabilityFetchError("patch panel list is not an array", reason="format")
        return [transform_patch_panel(panel) for panel in data if isinstance(panel, dict)]

    def fetch_available_ports(self, patch_panel_id: str) -> Set[int]:
        """Return the set of free port numbers on a patch panel."""
        data = self._get(f"/colocations/v2/patchPanels/{patch_panel_id}")
        if not isinstance(data, dict) or "availablePorts" not in data:
            raise AvailabilityFetchError(
                f"No availablePorts in response for {patch_panel_id}", reason="format"
            )
        if not isinstance(data["availablePorts"], list):
            raise AvailabilityFetchError(
                f"availablePorts for {patch_panel_id} is not a list", reason="format"
            )
        return set(_port_numbers(data["availablePorts"]))


def client_from_env(session: Optional[requests.Session] = None) -> EquinixClient:
    return EquinixClient(
        client_id=EQUINIX_CLIENT_ID,
        client_secret=EQUINIX_CLIENT_SECRET,
        environment=EQUINIX_ENV,
        session=session,
    )
