"""File-backed datacenter inventory."""

import json
import os
import re
import tempfile
from datetime import datetime
from typing import Any, Dict, List, Optional

from loguru import logger

from peeringdb import format_facility_address
from port_reconciler import STATUS_AVAILABLE, STATUS_OCCUPIED, normalize_ports

Datacenter = Dict[str, Any]

DATACENTER_DB_FILE = os.getenv("DATACENTER_DB_FILE", "config/datacenter-db.json")


class DatacenterStoreError(Exception):
    """Raised when the inventory file cannot be read or written."""


class DatacenterNotFound(KeyError):
    """Raised when no datacenter has the requested id."""


def _read_document(path: str) -> Any:
    with open(path, "r", encoding="utf-8") as fh:
        return json.load(fh)


def load_datacenters(path: Optional[str] = None) -> List[Datacenter]:
    """Load every datacenter record from the inventory file.

    A missing file is an empty inventory. The document may be a bare list or
    an object with a ``datacenters`` list; entries are returned as stored.
    """
    path = path or DATACENTER_DB_FILE
    try:
        data = _read_document(path)
    except FileNotFoundError:
        logger.warning(f"Datacenter file not found: {path}, starting empty")
        return []
    except json.JSONDecodeError as e:
        raise DatacenterStoreError(f"Invalid JSON in {path}: {e}") from e

    if isinstance(data, dict):
        data = data.get("datacenters")
    if not isinstance(data, list):
        raise DatacenterStoreError(f"{path} does not contain a datacenter list")
    return data


def _envelope(path: str) -> Optional[Dict[str, Any]]:
    try:
        data = _read_document(path)
    except (FileNotFoundError, json.JSONDecodeError):
        return None
    if isinstance(data, dict) and "datacenters" in data:
        return data
    return None


def save_datacenters(path: Optional[str], datacenters: List[Datacenter]) -> None:
    """Replace the inventory file atomically with ``datacenters``.

    A file stored as ``{"datacenters": [...]}`` keeps that shape and its other
    keys.
    """
    path = path or DATACENTER_DB_FILE
    document: Any = datacenters
    envelope = _envelope(path)
    if envelope is not None:
        document = dict(envelope, datacenters=datacenters)

    directory = os.path.dirname(os.path.abspath(path))
    os.makedirs(directory, exist_ok=True)
    fd, tmp_path = tempfile.mkstemp(prefix=".datacenter-db.", suffix=".tmp", dir=directory)
    try:
        with os.fdopen(fd, "w", encoding="utf-8") as fh:
            json.dump(document, fh, indent=2, ensure_ascii=False)
            fh.write("\n")
        os.replace(tmp_path, path)
    except OSError as e:
        if os.path.exists(tmp_path):
            os.unlink(tmp_path)
        raise DatacenterStoreError(f"Failed to write {path}: {e}") from e
    logger.info(f"Saved {len(datacenters)} datacenters to {path}")


def _records(datacenters: List[Any]) -> List[Datacenter]:
    return [dc for dc in datacenters if isinstance(dc, dict)]


def find_datacenter(datacenters: List[Datacenter], datacenter_id: str) -> Datacenter:
    for dc in _records(datacenters):
        if dc.get("id") == datacenter_id:
            return dc
    raise DatacenterNotFound(datacenter_id)


def find_datacenter_by_name(datacenters: List[Datacenter], name: str) -> Optional[Datacenter]:
    """Match on exact name, partial display name or exact site code."""
    normalized = name.lower().strip()
    for dc in _records(datacenters):
        if (
            str(dc.get("name", "")).lower() == normalized
            or normalized in str(dc.get("displayName", "")).lower()
            or str(dc.get("siteCode", "")).lower() == normalized
        ):
            return dc
    return None


def search_datacenters(datacenters: List[Datacenter], query: str) -> List[Datacenter]:
    normalized = query.lower().strip()
    fields = ("name", "displayName", "siteCode", "address")
    return [
        dc for dc in _records(datacenters)
        if any(normalized in str(dc.get(f, "")).lower() for f in fields)
    ]


def datacenter_options(datacenters: List[Datacenter]) -> List[Dict[str, str]]:
    return [{"value": dc.get("id", ""), "label": dc.get("displayName", "")} for dc in _records(datacenters)]


def common_requesters(datacenters: List[Datacenter], datacenter_id: str) -> List[Dict[str, str]]:
    try:
        dc = find_datacenter(datacenters, datacenter_id)
    except DatacenterNotFound:
        return []
    return [
        {"value": req.get("name", ""), "label": req.get("displayName", "")}
        for req in dc.get("commonRequesters") or []
        if isinstance(req, dict)
    ]


_EQUINIX_CODE = re.compile(r"\b([A-Z]{2,4}\d+)\b")
_INTERXION_CODE = re.compile(r"\b([A-Z]{3,4}\d+)\b")
_GENERIC_CODES = (
    re.compile(r"\b([A-Z]{2,4}\d+[A-Z]*)\b"),
    re.compile(r"(?:DC|dc)\s*([A-Z0-9]+)"),
    re.compile(r"-\s*([A-Z0-9]+)$"),
)
_NOT_A_CODE = {"DATACENTER", "CENTER", "CENTRE", "DC"}


def extract_site_code(facility: Dict[str, Any]) -> str:
    """Guess a short site code such as ``ZH4`` from a PeeringDB facility."""
    if facility.get("aka"):
        return str(facility["aka"])
    name = str(facility.get("name") or "")
    if not name:
        return ""

    lowered = name.lower()
    if "equinix" in lowered:
        patterns = (_EQUINIX_CODE,)
    elif "interxion" in lowered:
        patterns = (_INTERXION_CODE,)
    else:
        patterns = _GENERIC_CODES
    for pattern in patterns:
        match = pattern.search(name)
        if match:
            return match.group(1)

    last = re.split(r"[\s-]+", name)[-1]
    if (
        re.fullmatch(r"[A-Z0-9]{2,10}", last)
        and last != facility.get("city")
        and last.upper() not in _NOT_A_CODE
    ):
        return last
    return ""


def datacenter_from_facility(facility: Dict[str, Any], now: Optional[datetime] = None) -> Datacenter:
    """Build a new datacenter record from a PeeringDB facility search result."""
    if now is None:
        now = datetime.now()
    name = str(facility.get("name") or "")
    return {
        "id": f"custom-{int(now.timestamp() * 1000)}",
        "name": name,
        "displayName": name,
        "address": format_facility_address(facility),
        "siteCode": extract_site_code(facility) or "CUSTOM",
        "facilityId": facility.get("id"),
        "ourInfo": {
            "customer": "Your Company Name",
            "ibx": "",
            "cabinet": "",
            "cage": "",
            "patchPanel": "",
            "room": "",
            "defaultPort": "Next available port",
        },
    }


def port_summary(datacenter: Datacenter) -> Dict[str, int]:
    ports = normalize_ports((datacenter.get("ourInfo") or {}).get("portDetails"))
    return {
        "total": len(ports),
        "available": sum(1 for p in ports if p.get("status") == STATUS_AVAILABLE),
        "occupied": sum(1 for p in ports if p.get("status") == STATUS_OCCUPIED),
        "withCustomerInfo": sum(
            1 for p in ports if p.get("status") == STATUS_OCCUPIED and p.get("occupantName")
        ),
    }
