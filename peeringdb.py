"""PeeringDB directory client.

Lookups here are best effort: failures are logged and come back as empty
results so the form can still be filled in by hand.
"""

import os
import re
import time
from typing import Any, Callable, Dict, List, Optional

import requests
from dotenv import load_dotenv
from loguru import logger

load_dotenv()

PEERINGDB_API_URL = os.getenv("PEERINGDB_API_URL", "https://www.peeringdb.com/api")
PEERINGDB_API_KEY = os.getenv("PEERINGDB_API_KEY", "")
REQUEST_TIMEOUT = float(os.getenv("REQUEST_TIMEOUT", 15))

RIPE_DB_URL = "https://rest.db.ripe.net/ripe"
ARIN_URL = "https://whois.arin.net/rest"
RIPESTAT_URL = "https://stat.ripe.net/data/whois/data.json"

API_DELAY = 0.15
BATCH_SIZE = 10

COUNTRY_SUFFIXES = [
    (re.compile(r"\s+CH$", re.I), "CH"),
    (re.compile(r"\s+IT$", re.I), "IT"),
    (re.compile(r"\s+DE$", re.I), "DE"),
    (re.compile(r"\s+FR$", re.I), "FR"),
    (re.compile(r"\s+(UK|GB)$", re.I), "GB"),
    (re.compile(r"\s+US$", re.I), "US"),
    (re.compile(r"\s+Switzerland$", re.I), "CH"),
    (re.compile(r"\s+Italy$", re.I), "IT"),
    (re.compile(r"\s+Germany$", re.I), "DE"),
    (re.compile(r"\s+France$", re.I), "FR"),
]

_ADDRESS_REMARK = re.compile(r"\d+.*,\s*\d{4,5}|^[A-Z]{2}-\d{4,5}")
_ADDRESS_WORDS = ("Via ", "Street", "Avenue", "Rue ")


class AddressCache:
    """Network id to postal address, kept for the life of the process."""

    def __init__(self):
        self._addresses: Dict[int, str] = {}

    def get(self, network_id: int) -> Optional[str]:
        return self._addresses.get(network_id)

    def set(self, network_id: int, address: str) -> None:
        self._addresses[network_id] = address

    def __contains__(self, network_id: int) -> bool:
        return network_id in self._addresses

    def __len__(self) -> int:
        return len(self._addresses)


def split_country_filter(query: str):
    """Strip a trailing country hint such as ``"Equinix CH"``."""
    for pattern, country in COUNTRY_SUFFIXES:
        if pattern.search(query):
            return pattern.sub("", query), country
    return query, None


def join_address(obj: Dict[str, Any]) -> str:
    keys = ("address1", "address2", "city", "state", "zipcode", "country")
    return ", ".join(str(obj[k]) for k in keys if obj.get(k))


def format_facility_option(facility: Dict[str, Any]) -> str:
    return f"{facility.get('name')} - {facility.get('city')}, {facility.get('country')}"


def format_facility_address(facility: Dict[str, Any]) -> str:
    return join_address(facility)


class PeeringDBClient:
    def __init__(
        self,
        api_key: str = "",
        base_url: str = PEERINGDB_API_URL,
        session: Optional[requests.Session] = None,
        address_cache: Optional[AddressCache] = None,
        delay: float = API_DELAY,
        timeout: float = REQUEST_TIMEOUT,
        sleep: Callable[[float], None] = time.sleep,
    ):
        self.api_key = api_key
        self.base_url = base_url.rstrip("/")
        self.session = session or requests.Session()
        self.address_cache = address_cache if address_cache is not None else AddressCache()
        self.delay = delay
        self.timeout = timeout
        self._sleep = sleep

    def _headers(self) -> Dict[str, str]:
        headers = {"Accept": "application/json"}
        if self.api_key:
            headers["Authorization"] = f"Api-Key {self.api_key}"
        return headers

    def _get_json(self, url: str, params: Optional[Dict[str, Any]] = None, headers=None) -> Any:
        response = self.session.get(
            url,
            params=params,
            headers=headers if headers is not None else self._headers(),
            timeout=self.timeout,
        )
        response.raise_for_status()
        return response.json()

    def _data(self, path: str, params: Optional[Dict[str, Any]] = None) -> List[Dict[str, Any]]:
        payload = self._get_json(f"{self.base_url}/{path}", params=params)
        data = payload.get("data") if isinstance(payload, dict) else None
        return data if isinstance(data, list) else []

    def _first(self, path: str, params: Optional[Dict[str, Any]] = None) -> Optional[Dict[str, Any]]:
        data = self._data(path, params)
        return data[0] if data else None

    def search_facilities(self, query: str) -> List[Dict[str, Any]]:
        search, country = split_country_filter(query)
        params = {"name_search": search}
        if country:
            params["country"] = country
        try:
            results = self._data("fac", params)
        except (requests.exceptions.RequestException, ValueError) as e:
            logger.error(f"Error fetching facilities for {query!r}: {e}")
            return []
        if country:
            results.sort(key=lambda fac: 0 if fac.get("country") == country else 1)
        return results

    def get_facility(self, facility_id: int) -> Optional[Dict[str, Any]]:
        try:
            return self._first(f"fac/{facility_id}")
        except (requests.exceptions.RequestException, ValueError) as e:
            logger.error(f"Error fetching facility {facility_id}: {e}")
            return None

    def search_swiss_datacenters(self) -> List[Dict[str, Any]]:
        try:
            return self._data("fac", {"country": "CH"})
        except (requests.exceptions.RequestException, ValueError) as e:
            logger.error(f"Error fetching Swiss facilities: {e}")
            return []

    def search_by_asn(self, asn: int) -> Optional[Dict[str, Any]]:
        try:
            return self._first("net", {"asn": asn})
        except (requests.exceptions.RequestException, ValueError) as e:
            logger.error(f"Error fetching network by ASN {asn}: {e}")
            return None

    def get_network(self, network_id: int) -> Optional[Dict[str, Any]]:
        try:
            return self._first(f"net/{network_id}")
        except (requests.exceptions.RequestException, ValueError) as e:
            logger.error(f"Error fetching network {network_id}: {e}")
            return None

    def get_ix(self, ix_id: int) -> Optional[Dict[str, Any]]:
        try:
            return self._first(f"ix/{ix_id}")
        except (requests.exceptions.RequestException, ValueError) as e:
            logger.error(f"Error fetching IX {ix_id}: {e}")
            return None

    def _fetch_each(self, path: str, ids: List[int]) -> List[Dict[str, Any]]:
        results = []
        for i, obj_id in enumerate(ids):
            try:
                obj = self._first(f"{path}/{obj_id}")
            except (requests.exceptions.RequestException, ValueError) as e:
                logger.warning(f"Failed to fetch {path} {obj_id}: {e}")
                obj = None
            if obj:
                results.append(obj)
            if self.delay and i < len(ids) - 1:
                self._sleep(self.delay)
        return results

    def _related_ids(self, path: str, facility_id: int, key: str, **extra) -> List[int]:
        rows = self._data(path, {"fac_id": facility_id, **extra})
        ids: List[int] = []
        for row in rows:
            value = row.get(key)
            if value and value not in ids:
                ids.append(value)
        return ids

    def get_ixs_in_facility(self, facility_id: int) -> List[Dict[str, Any]]:
        try:
            ids = self._related_ids("ixfac", facility_id, "ix_id")
        except (requests.exceptions.RequestException, ValueError) as e:
            logger.error(f"Error fetching IXs for facility {facility_id}: {e}")
            return []
        return self._fetch_each("ix", ids)

    def get_carriers_in_facility(self, facility_id: int) -> List[Dict[str, Any]]:
        try:
            ids = self._related_ids("carrierfac", facility_id, "carrier_id")
        except (requests.exceptions.RequestException, ValueError) as e:
            logger.error(f"Error fetching carriers for facility {facility_id}: {e}")
            return []
        return self._fetch_each("carrier", ids)

    def get_networks_in_facility(self, facility_id: int) -> List[Dict[str, Any]]:
        """Networks present in a facility, sorted by name."""
        try:
            ids = self._related_ids("netfac", facility_id, "net_id", limit=1000)
        except (requests.exceptions.RequestException, ValueError) as e:
            logger.error(f"Error fetching networks for facility {facility_id}: {e}")
            return []
        logger.info(f"Found {len(ids)} network relationships for facility {facility_id}")

        networks = []
        for start in range(0, len(ids), BATCH_SIZE):
            for network_id in ids[start:start + BATCH_SIZE]:
                try:
                    net = self._first(f"net/{network_id}")
                except (requests.exceptions.RequestException, ValueError):
                    net = None
                if net and net.get("name"):
                    networks.append(net)
            if self.delay and start + BATCH_SIZE < len(ids):
                self._sleep(self.delay * 2)
        return sorted(networks, key=lambda net: str(net["name"]).lower())

    def get_network_details(self, network_id: int) -> Optional[Dict[str, Any]]:
        """Network record with ``whois_address`` resolved where possible."""
        network = self.get_network(network_id)
        if not network:
            return None

        cached = self.address_cache.get(network_id)
        if cached is not None:
            network["whois_address"] = cached
            return network

        address = network.get("address") or network.get("org_address")
        if not address and network.get("org_id"):
            address = self._org_address(network["org_id"])
        if not address:
            address = self._poc_address(network_id)
        if not address and network.get("asn"):
            address, org_name = self._ripe_address(network["asn"])
            if org_name:
                network["whois_org"] = org_name
            if not address and network.get("info_type") == "NSP":
                address = self._arin_address(network["asn"])
            if not address:
                address = self._ripestat_address(network["asn"])

        if address:
            network["whois_address"] = address
            self.address_cache.set(network_id, address)
        return network

    def _org_address(self, org_id: int) -> str:
        try:
            org = self._first(f"org/{org_id}")
        except (requests.exceptions.RequestException, ValueError) as e:
            logger.debug(f"Org lookup failed for {org_id}: {e}")
            return ""
        return join_address(org) if org else ""

    def _poc_address(self, network_id: int) -> str:
        try:
            pocs = self._data("poc", {"net_id": network_id})
        except (requests.exceptions.RequestException, ValueError) as e:
            logger.debug(f"POC lookup failed for {network_id}: {e}")
            return ""
        for poc in pocs:
            if poc.get("address1") or poc.get("address2"):
                return join_address(poc)
        return ""

    def _ripe_address(self, asn: int):
        accept = {"Accept": "application/json"}
        try:
            asn_data = self._get_json(f"{RIPE_DB_URL}/aut-num/AS{asn}.json", headers=accept)
            org_id = first_attribute(ripe_attributes(asn_data), "org")
            if not org_id:
                return "", ""
            org_data = self._get_json(f"{RIPE_DB_URL}/organisation/{org_id}.json", headers=accept)
        except (requests.exceptions.RequestException, ValueError) as e:
            logger.debug(f"RIPE lookup failed for AS{asn}: {e}")
            return "", ""
        attrs = ripe_attributes(org_data)
        lines = [a.get("value") for a in attrs if a.get("name") == "address" and a.get("value")]
        return ", ".join(lines), first_attribute(attrs, "org-name") or ""

    def _arin_address(self, asn: int) -> str:
        accept = {"Accept": "application/json"}
        try:
            asn_data = self._get_json(f"{ARIN_URL}/asn/AS{asn}.json", headers=accept)
            handle = ((asn_data.get("asn") or {}).get("orgRef") or {}).get("@handle")
            if not handle:
                return ""
            org = self._get_json(f"{ARIN_URL}/org/{handle}.json", headers=accept).get("org") or {}
        except (requests.exceptions.RequestException, ValueError, AttributeError) as e:
            logger.debug(f"ARIN lookup failed for AS{asn}: {e}")
            return ""
        lines = (org.get("streetAddress") or {}).get("line") or []
        if not isinstance(lines, list):
            lines = [lines]
        parts = [line["$"] for line in lines if isinstance(line, dict) and line.get("$")]
        for value in (
            (org.get("city") or {}).get("$"),
            ((org.get("iso3166-1") or {}).get("code2") or {}).get("$"),
            (org.get("postalCode") or {}).get("$"),
        ):
            if value:
                parts.append(value)
        return ", ".join(parts)

    def _ripestat_address(self, asn: int) -> str:
        try:
            data = self._get_json(
                RIPESTAT_URL,
                params={"resource": f"AS{asn}"},
                headers={"Accept": "application/json"},
            )
        except (requests.exceptions.RequestException, ValueError) as e:
            logger.debug(f"RIPEstat lookup failed for AS{asn}: {e}")
            return ""
        records = ((data.get("data") or {}).get("records") or [[]])
        found = []
        for record in records[0] if records else []:
            if record.get("key") != "remarks" or not record.get("value"):
                continue
            for line in str(record["value"]).split("\n"):
                if _ADDRESS_REMARK.search(line) or any(w in line for w in _ADDRESS_WORDS):
                    found.append(line.strip())
        return ", ".join(found)


def ripe_attributes(payload: Any) -> List[Dict[str, Any]]:
    """Attribute list of the first object in a RIPE REST response."""
    try:
        return payload["objects"]["object"][0]["attributes"]["attribute"] or []
    except (KeyError, IndexError, TypeError):
        return []


def first_attribute(attributes: List[Dict[str, Any]], name: str) -> Optional[str]:
    for attr in attributes:
        if attr.get("name") == name:
            return attr.get("value")
    return None


def client_from_env(session: Optional[requests.Session] = None, address_cache: Optional[AddressCache] = None) -> PeeringDBClient:
    return PeeringDBClient(
        api_key=PEERINGDB_API_KEY,
        base_url=PEERINGDB_API_URL,
        session=session,
        address_cache=address_cache,
    )
