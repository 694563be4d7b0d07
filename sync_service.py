"""Smart sync of live patch panel availability into the datacenter file."""

import os
from datetime import datetime, timezone
from typing import Any, Dict, Optional, Protocol, Set

from loguru import logger

import datacenter_store
from port_reconciler import PanelSizeError, reconcile

DEFAULT_PANEL_SIZE = os.getenv("DEFAULT_PANEL_SIZE", "12")
DEFAULT_PATCH_PANEL_ID = os.getenv("DEFAULT_PATCH_PANEL_ID", "PP:0201:0102:1374601")
DEFAULT_DATACENTER_ID = os.getenv("DEFAULT_DATACENTER_ID", "equinix-zh2")
SYNC_SOURCE = "Equinix API"
STATIC_SOURCE = "Static Database"


class AvailabilitySource(Protocol):
    def fetch_available_ports(self, patch_panel_id: str) -> Set[int]:
        """Return every free port number, raising on failure."""


def configured_panel_size() -> Optional[int]:
    """Panel size for panels with no stored ports, from DEFAULT_PANEL_SIZE."""
    if not DEFAULT_PANEL_SIZE:
        return None
    try:
        return int(DEFAULT_PANEL_SIZE)
    except ValueError:
        raise PanelSizeError(f"DEFAULT_PANEL_SIZE is not an integer: {DEFAULT_PANEL_SIZE!r}") from None


def _timestamp(now: datetime) -> str:
    return now.strftime("%Y-%m-%dT%H:%M:%S") + f".{now.microsecond // 1000:03d}Z"


def sync_datacenter(
    source: AvailabilitySource,
    datacenter_id: str = DEFAULT_DATACENTER_ID,
    patch_panel_id: str = DEFAULT_PATCH_PANEL_ID,
    store_path: Optional[str] = None,
    preserve_occupant_info: bool = True,
    default_panel_size: Optional[int] = None,
    keep_reserved: bool = False,
    now: Optional[datetime] = None,
) -> Dict[str, Any]:
    """Fetch availability, reconcile the stored ports and write them back.

    Availability is fetched before the file is touched, so a failed fetch
    (``AvailabilityFetchError``) leaves the inventory unchanged.
    """
    if now is None:
        now = datetime.now(timezone.utc)
    if default_panel_size is None:
        default_panel_size = configured_panel_size()

    logger.info(f"[SYNC] Fetching data for patch panel: {patch_panel_id}")
    available = source.fetch_available_ports(patch_panel_id)

    datacenters = datacenter_store.load_datacenters(store_path)
    datacenter = datacenter_store.find_datacenter(datacenters, datacenter_id)
    our_info = datacenter.get("ourInfo")
    if not isinstance(our_info, dict):
        our_info = datacenter["ourInfo"] = {}

    ports, changes = reconcile(
        our_info.get("portDetails"),
        available,
        preserve_occupant_info=preserve_occupant_info,
        default_panel_size=default_panel_size,
        keep_reserved=keep_reserved,
    )

    timestamp = _timestamp(now)
    our_info["portDetails"] = ports
    our_info["availablePorts"] = [str(p) for p in sorted(available)]
    our_info["lastApiSync"] = timestamp
    our_info["syncSource"] = SYNC_SOURCE
    datacenter_store.save_datacenters(store_path, datacenters)

    logger.info(f"[SYNC] Synchronization completed for {datacenter_id}: {changes}")
    return {
        "success": True,
        "message": "Database synchronized successfully",
        "patchPanelId": patch_panel_id,
        "datacenterId": datacenter_id,
        "timestamp": timestamp,
        "changes": changes,
        "portDetails": ports,
    }


def sync_status(datacenter_id: str = DEFAULT_DATACENTER_ID, store_path: Optional[str] = None) -> Dict[str, Any]:
    datacenters = datacenter_store.load_datacenters(store_path)
    datacenter = datacenter_store.find_datacenter(datacenters, datacenter_id)
    our_info = datacenter.get("ourInfo") or {}
    return {
        "datacenterId": datacenter_id,
        "patchPanel": our_info.get("patchPanel"),
        "lastSync": our_info.get("lastApiSync"),
        "syncSource": our_info.get("syncSource") or STATIC_SOURCE,
        "portSummary": datacenter_store.port_summary(datacenter),
    }
