# platform_clients.py

from abc import ABC, abstractmethod
from datetime import datetime
from typing import Any, Dict, List, Optional, Tuple
import logging

import requests

from config_manager import PlatformCredentials
from models import BusinessUnit, Platform

logger = logging.getLogger(__name__)

REQUEST_TIMEOUT_SECONDS = 30


class PlatformClient(ABC):
    """
    Fetches raw incidents for one business unit. Returns fully paginated lists
    of deserialized JSON objects; HTTP errors propagate and fail the run.
    """
    platform: Platform
    incidents_path: str = ""

    def __init__(self, business_unit: BusinessUnit, credentials: PlatformCredentials,
                 session: Optional[requests.Session] = None):
        self.business_unit = business_unit
        self.base_url = credentials.base_url.rstrip('/')
        self.session = session or requests.Session()
        self.session.headers.update(self._headers(credentials.api_key or ""))

    def _headers(self, api_key: str) -> Dict[str, str]:
        return {"Authorization": f"Bearer {api_key}", "Accept": "application/json"}

    def _get(self, path: str, params: Optional[Dict[str, Any]] = None) -> Dict[str, Any]:
        url = f"{self.base_url}{path}"
        logger.debug(f"GET {url} params={params}")
        response = self.session.get(url, params=params, timeout=REQUEST_TIMEOUT_SECONDS)
        response.raise_for_status()
        return response.json()

    @abstractmethod
    def fetch_incidents(self, start_date: datetime) -> List[Dict[str, Any]]:
        """Every incident created on or after start_date, all pages included."""

    def test_connection(self) -> Tuple[bool, str]:
        """A lightweight call proving the key and base URL work."""
        try:
            self._get(self.incidents_path, params=self._probe_params())
        except requests.RequestException as e:
            logger.error(f"{self.platform.value} connection test for {self.business_unit.value} failed: {e}")
            return False, f"{self.business_unit.value} ({self.platform.value}): {e}"
        logger.info(f"{self.platform.value} connection test for {self.business_unit.value} succeeded.")
        return True, f"{self.business_unit.value} ({self.platform.value}): OK"

    def _probe_params(self) -> Dict[str, Any]:
        return {}


class IncidentIOClient(PlatformClient):
    """incident.io v2 API. Cursor pagination via pagination_meta.after."""
    platform = Platform.INCIDENT_IO
    incidents_path = "/v2/incidents"
    page_size = 250

    def _probe_params(self) -> Dict[str, Any]:
        return {"page_size": 1}

    def fetch_incidents(self, start_date: datetime) -> List[Dict[str, Any]]:
        incidents: List[Dict[str, Any]] = []
        params: Dict[str, Any] = {
            "page_size": self.page_size,
            "created_at[gte]": start_date.strftime("%Y-%m-%d"),
        }
        while True:
            payload = self._get(self.incidents_path, params=params)
            incidents.extend(payload.get("incidents", []))
            after = (payload.get("pagination_meta") or {}).get("after")
            if not after:
                break
            params = {**params, "after": after}
        logger.info(f"Fetched {len(incidents)} incident(s) from incident.io for {self.business_unit.value}.")
        return incidents


class FireHydrantClient(PlatformClient):
    """FireHydrant v1 API. Page-number pagination via pagination.next."""
    platform = Platform.FIREHYDRANT
    incidents_path = "/v1/incidents"
    per_page = 100

    def _headers(self, api_key: str) -> Dict[str, str]:
        # FireHydrant takes the bare token.
        return {"Authorization": api_key, "Accept": "application/json"}

    def _probe_params(self) -> Dict[str, Any]:
        return {"per_page": 1}

    def fetch_incidents(self, start_date: datetime) -> List[Dict[str, Any]]:
        incidents: List[Dict[str, Any]] = []
        page: Optional[int] = 1
        while page:
            payload = self._get(self.incidents_path, params={
                "page": page,
                "per_page": self.per_page,
                "start_date": start_date.strftime("%Y-%m-%d"),
            })
            incidents.extend(payload.get("data", []))
            page = (payload.get("pagination") or {}).get("next")
        logger.info(f"Fetched {len(incidents)} incident(s) from FireHydrant for {self.business_unit.value}.")
        return incidents


CLIENT_CLASSES = {
    Platform.INCIDENT_IO: IncidentIOClient,
    Platform.FIREHYDRANT: FireHydrantClient,
}


def client_for(business_unit: BusinessUnit, credentials: PlatformCredentials,
               session: Optional[requests.Session] = None) -> PlatformClient:
    return CLIENT_CLASSES[credentials.platform](business_unit, credentials, session=session)
