"""Merge live patch panel availability into stored port records."""

from typing import Any, Dict, Iterable, List, Optional, Tuple

PortRecord = Dict[str, Any]
SyncSummary = Dict[str, Any]

STATUS_AVAILABLE = "available"
STATUS_OCCUPIED = "occupied"
STATUS_RESERVED = "reserved"
PORT_STATUSES = (STATUS_AVAILABLE, STATUS_OCCUPIED, STATUS_RESERVED)

DEFAULT_MEDIA_TYPE = "Fiber"


class PanelSizeError(ValueError):
    """Raised when the panel size cannot be determined."""


def _port_number(value: Any) -> Optional[int]:
    if isinstance(value, bool):
        return None
    if isinstance(value, str) and value.strip().isdecimal():
        value = int(value)
    if not isinstance(value, int) or value < 1:
        return None
    return value


def normalize_ports(raw: Any) -> List[PortRecord]:
    """Drop anything in a stored port list that is not a usable record.

    Numeric strings such as ``"5"`` are read as port numbers. Entries without
    a positive integer ``portNumber`` are skipped and count as no prior record
    for that port.
    """
    if not isinstance(raw, list):
        return []
    ports: List[PortRecord] = []
    for entry in raw:
        if not isinstance(entry, dict):
            continue
        number = _port_number(entry.get("portNumber"))
        if number is None:
            continue
        if entry["portNumber"] != number:
            entry = dict(entry, portNumber=number)
        ports.append(entry)
    return ports


def _panel_size(raw_ports: Any, default_panel_size: Optional[int]) -> int:
    # Every stored row counts towards the size, usable or not.
    if isinstance(raw_ports, list) and raw_ports:
        return len(raw_ports)
    if default_panel_size is None:
        raise PanelSizeError("no existing ports and no default panel size configured")
    if isinstance(default_panel_size, bool) or not isinstance(default_panel_size, int) or default_panel_size < 1:
        raise PanelSizeError(f"invalid default panel size: {default_panel_size!r}")
    return default_panel_size


def _first_by_number(existing_ports: List[PortRecord]) -> Dict[int, PortRecord]:
    index: Dict[int, PortRecord] = {}
    for record in existing_ports:
        index.setdefault(record["portNumber"], record)
    return index


def count_preserved_records(existing_ports: Iterable[PortRecord]) -> int:
    """Count prior records that were occupied and named an occupant."""
    return sum(
        1
        for p in existing_ports
        if p.get("status") == STATUS_OCCUPIED and p.get("occupantName")
    )


def reconcile(
    existing_ports: Any,
    available_port_numbers: Iterable[int],
    preserve_occupant_info: bool = True,
    default_panel_size: Optional[int] = None,
    keep_reserved: bool = False,
) -> Tuple[List[PortRecord], SyncSummary]:
    """Reconcile stored port records with the ports reported as free.

    Args:
        existing_ports: previously stored port records for the panel.
        available_port_numbers: every port number the source reports as free.
            Any other port is presumed occupied.
        preserve_occupant_info: keep occupant metadata of ports that stay
            occupied.
        default_panel_size: panel size used when there are no stored ports.
        keep_reserved: leave ``reserved`` ports reserved instead of forcing
            them to ``occupied``.

    Returns:
        The merged records, one per port ``1..N`` in ascending order, and a
        summary with ``totalPorts``, ``occupiedPorts``, ``availablePorts`` and
        ``preservedCustomerRecords``.

    Raises:
        PanelSizeError: no stored ports and no valid default panel size.
    """
    prior = normalize_ports(existing_ports)
    size = _panel_size(existing_ports, default_panel_size)
    available = set(available_port_numbers)
    by_number = _first_by_number(prior)

    merged: List[PortRecord] = []
    for number in range(1, size + 1):
        previous = by_number.get(number)
        if number in available:
            merged.append({"portNumber": number, "status": STATUS_AVAILABLE})
        elif previous is not None and preserve_occupant_info:
            record = dict(previous)
            if not (keep_reserved and previous.get("status") == STATUS_RESERVED):
                record["status"] = STATUS_OCCUPIED
            merged.append(record)
        else:
            merged.append(
                {
                    "portNumber": number,
                    "status": STATUS_OCCUPIED,
                    "mediaType": DEFAULT_MEDIA_TYPE,
                }
            )

    in_range = [n for n in available if 1 <= n <= size]
    summary: SyncSummary = {
        "totalPorts": size,
        "availablePorts": sorted(available),
        "occupiedPorts": size - len(in_range),
        "preservedCustomerRecords": count_preserved_records(prior),
    }
    return merged, summary
