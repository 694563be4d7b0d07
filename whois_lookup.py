"""WHOIS lookups used to prefill the requesting party of an LOA."""

import re
import subprocess
from typing import Any, Dict, List, Optional

import requests
from loguru import logger

from peeringdb import (
    PEERINGDB_API_URL,
    REQUEST_TIMEOUT,
    RIPE_DB_URL,
    first_attribute,
    ripe_attributes,
)

WhoisData = Dict[str, str]

WHOIS_SERVERS = [
    ("whois.ripe.net", "aut-num:"),
    ("whois.arin.net", "ASNumber:"),
    ("whois.apnic.net", "aut-num:"),
]

COUNTRY_NAMES = {
    "CH": "Switzerland",
    "IT": "Italy",
    "DE": "Germany",
    "FR": "France",
    "AT": "Austria",
    "US": "United States",
    "GB": "United Kingdom",
}

_COUNTRY_LINE = re.compile(r"^(SWITZERLAND|ITALY|GERMANY|FRANCE|AUSTRIA)", re.I)
_POSTAL_CITY = re.compile(r"^(\d{4,5})\s+(.+)$")
_NOC_EMAIL = re.compile(r"noc@[\w.-]+", re.I)
_ABUSE_EMAIL = re.compile(r"abuse@[\w.-]+", re.I)


def clean_asn(asn: str) -> str:
    """``"AS13030"`` -> ``"13030"``."""
    return re.sub(r"^AS", "", str(asn).strip(), flags=re.I)


def split_address_lines(lines: List[str]) -> WhoisData:
    """Split RIPE ``address:`` lines into street, postal code and city."""
    street = []
    postal_code = None
    city = None
    for line in lines:
        postal = _POSTAL_CITY.match(line)
        if postal:
            postal_code, city = postal.group(1), postal.group(2)
        elif _COUNTRY_LINE.match(line):
            continue
        elif not postal_code and "," not in line:
            if re.match(r"^[A-Z][a-z]", line) and not re.search(r"\d", line):
                city = line
            else:
                street.append(line)
        else:
            street.append(line)

    data: WhoisData = {}
    if street:
        data["address"] = ", ".join(street)
    if postal_code:
        data["postalCode"] = postal_code
    if city:
        data["city"] = city
    return data


def parse_whois_response(text: str) -> WhoisData:
    """Pull company details out of raw RPSL whois output."""
    data: WhoisData = {}

    match = re.search(r"aut-num:\s*(AS\d+)", text, re.I)
    if match:
        data["asNumber"] = match.group(1)
    match = re.search(r"org-name:\s*(.+)", text, re.I)
    if match:
        data["orgName"] = match.group(1).strip()
    match = re.search(r"country:\s*([A-Z]{2})", text, re.I)
    if match:
        data["country"] = match.group(1)

    lines = [m.strip() for m in re.findall(r"address:\s*(.+)", text, re.I)]
    lines = [line for line in lines if line and not re.fullmatch(r"\d{4,5}", line)]
    if lines:
        data["address"] = lines[0]
        for i, line in enumerate(lines):
            postal = _POSTAL_CITY.match(line)
            if postal:
                data["postalCode"] = postal.group(1)
                data["city"] = postal.group(2)
            if _COUNTRY_LINE.match(line) and i > 0 and "city" not in data:
                prev = lines[i - 1]
                prev_postal = _POSTAL_CITY.match(prev)
                if prev_postal:
                    data["city"] = prev_postal.group(2)
                elif "," not in prev:
                    data["city"] = prev

    match = re.search(r"phone:\s*(.+)", text, re.I)
    if match:
        data["phone"] = match.group(1).strip()
    match = _NOC_EMAIL.search(text)
    if match:
        data["nocEmail"] = match.group(0)
    match = _ABUSE_EMAIL.search(text)
    if match:
        data["abuseEmail"] = match.group(0)
    match = re.search(r"e-mail:\s*([\w.-]+@[\w.-]+)", text, re.I)
    if match:
        data["email"] = match.group(1)
    return data


def _from_peeringdb_network(net: Dict[str, Any], asn: Optional[str] = None) -> WhoisData:
    data: WhoisData = {"asNumber": f"AS{asn or net.get('asn')}"}
    for key, value in (
        ("orgName", net.get("name")),
        ("nocEmail", net.get("policy_email") or net.get("tech_email")),
        ("phone", net.get("policy_phone") or net.get("tech_phone")),
    ):
        if value:
            data[key] = value
    return data


def lookup_as_via_peeringdb(asn: str, session: Optional[requests.Session] = None) -> Optional[WhoisData]:
    session = session or requests.Session()
    number = clean_asn(asn)
    try:
        response = session.get(f"{PEERINGDB_API_URL}/net", params={"asn": number}, timeout=REQUEST_TIMEOUT)
        response.raise_for_status()
        nets = response.json().get("data") or []
    except (requests.exceptions.RequestException, ValueError) as e:
        logger.error(f"PeeringDB lookup error for AS{number}: {e}")
        return None
    return _from_peeringdb_network(nets[0], number) if nets else None


def lookup_as_via_ripe(asn: str, session: Optional[requests.Session] = None) -> Optional[WhoisData]:
    """Look an AS up in the RIPE database, falling back to PeeringDB."""
    session = session or requests.Session()
    number = clean_asn(asn)
    accept = {"Accept": "application/json"}
    try:
        response = session.get(f"{RIPE_DB_URL}/aut-num/AS{number}.json", headers=accept, timeout=REQUEST_TIMEOUT)
        if response.status_code != 200:
            logger.info(f"AS{number} not in RIPE ({response.status_code}), trying PeeringDB")
            return lookup_as_via_peeringdb(number, session)
        attributes = ripe_attributes(response.json())
    except (requests.exceptions.RequestException, ValueError) as e:
        logger.error(f"RIPE lookup error for AS{number}: {e}")
        return None

    data: WhoisData = {"asNumber": f"AS{number}"}
    as_name = first_attribute(attributes, "as-name")
    if as_name:
        data["orgName"] = as_name
    for attr in attributes:
        if attr.get("name") != "remarks" or not attr.get("value"):
            continue
        noc = _NOC_EMAIL.search(attr["value"])
        if noc:
            data["nocEmail"] = noc.group(0)
        abuse = _ABUSE_EMAIL.search(attr["value"])
        if abuse:
            data["abuseEmail"] = abuse.group(0)

    org_id = first_attribute(attributes, "org")
    if not org_id:
        return data
    try:
        response = session.get(f"{RIPE_DB_URL}/organisation/{org_id}.json", headers=accept, timeout=REQUEST_TIMEOUT)
        if response.status_code != 200:
            return data
        org_attributes = ripe_attributes(response.json())
    except (requests.exceptions.RequestException, ValueError) as e:
        logger.warning(f"RIPE organisation lookup failed for {org_id}: {e}")
        return data

    for key, name in (("orgName", "org-name"), ("country", "country"), ("phone", "phone")):
        value = first_attribute(org_attributes, name)
        if value:
            data[key] = value
    address_lines = [a["value"] for a in org_attributes if a.get("name") == "address" and a.get("value")]
    data.update(split_address_lines(address_lines))
    return data


def lookup_by_network_id(network_id: int, session: Optional[requests.Session] = None) -> Optional[WhoisData]:
    """Resolve a PeeringDB network id to WHOIS data via its ASN."""
    session = session or requests.Session()
    try:
        response = session.get(f"{PEERINGDB_API_URL}/net/{network_id}", timeout=REQUEST_TIMEOUT)
        response.raise_for_status()
        nets = response.json().get("data") or []
    except (requests.exceptions.RequestException, ValueError) as e:
        logger.error(f"PeeringDB network {network_id} lookup failed: {e}")
        return None
    if not nets or not nets[0].get("asn"):
        return None
    net = nets[0]
    return lookup_as_via_ripe(f"AS{net['asn']}", session) or _from_peeringdb_network(net)


def lookup_as_cli(asn: str, runner=subprocess.run) -> Optional[WhoisData]:
    """Query RIPE, ARIN and APNIC in turn with the ``whois`` binary."""
    number = clean_asn(asn)
    for server, marker in WHOIS_SERVERS:
        try:
            result = runner(
                ["whois", "-h", server, f"AS{number}"],
                capture_output=True,
                text=True,
                timeout=REQUEST_TIMEOUT,
            )
        except (OSError, subprocess.SubprocessError) as e:
            logger.error(f"whois against {server} failed: {e}")
            return None
        if marker in result.stdout:
            return parse_whois_response(result.stdout)
    return None


def format_address(data: WhoisData) -> str:
    parts = []
    if data.get("address"):
        parts.append(data["address"])
    if data.get("postalCode") and data.get("city"):
        parts.append(f"{data['postalCode']} {data['city']}")
    elif data.get("city"):
        parts.append(data["city"])
    if data.get("country"):
        parts.append(COUNTRY_NAMES.get(data["country"], data["country"]))
    return ", ".join(parts)
