import subprocess
from types import SimpleNamespace

import requests

import whois_lookup

RIPE = "https://rest.db.ripe.net/ripe"
API = "https://www.peeringdb.com/api"

RIPE_TEXT = """\
aut-num:        AS3303
as-name:        SWISSCOM
org:            ORG-SA1-RIPE
remarks:        noc@swisscom.com for peering
remarks:        abuse@swisscom.com
organisation:   ORG-SA1-RIPE
org-name:       Swisscom (Schweiz) AG
country:        CH
address:        Alte Tiefenaustrasse 6
address:        3048
address:        3048 Worblaufen
address:        SWITZERLAND
phone:          +41 58 221 99 11
e-mail:         peering@swisscom.com
"""


def attributes(*pairs):
    return {"objects": {"object": [{"attributes": {"attribute": [{"name": n, "value": v} for n, v in pairs]}}]}}


def test_clean_asn():
    assert whois_lookup.clean_asn("AS3303") == "3303"
    assert whois_lookup.clean_asn(" as13030 ") == "13030"
    assert whois_lookup.clean_asn(3303) == "3303"


def test_parse_whois_response():
    data = whois_lookup.parse_whois_response(RIPE_TEXT)

    assert data == {
        "asNumber": "AS3303",
        "orgName": "Swisscom (Schweiz) AG",
        "country": "CH",
        "address": "Alte Tiefenaustrasse 6",
        "postalCode": "3048",
        "city": "Worblaufen",
        "phone": "+41 58 221 99 11",
        "nocEmail": "noc@swisscom.com",
        "abuseEmail": "abuse@swisscom.com",
        "email": "peering@swisscom.com",
    }


def test_parse_city_before_country_line():
    text = "address: Via Cantonale 18\naddress: Manno\naddress: SWITZERLAND\n"
    data = whois_lookup.parse_whois_response(text)
    assert data["address"] == "Via Cantonale 18"
    assert data["city"] == "Manno"


def test_split_address_lines():
    assert whois_lookup.split_address_lines(["Binzring 17", "8045 Zurich", "Switzerland"]) == {
        "address": "Binzring 17",
        "postalCode": "8045",
        "city": "Zurich",
    }
    assert whois_lookup.split_address_lines(["Hauptstrasse", "Basel"]) == {"city": "Basel"}
    assert whois_lookup.split_address_lines([]) == {}


def test_ripe_lookup_with_organisation(make_session, ok):
    routes = {
        f"{RIPE}/aut-num/AS3303.json": ok(
            attributes(
                ("as-name", "SWISSCOM"),
                ("org", "ORG-SA1-RIPE"),
                ("remarks", "Peering: noc@swisscom.com"),
            )
        ),
        f"{RIPE}/organisation/ORG-SA1-RIPE.json": ok(
            attributes(
                ("org-name", "Swisscom (Schweiz) AG"),
                ("country", "CH"),
                ("address", "Alte Tiefenaustrasse 6"),
                ("address", "3048 Worblaufen"),
                ("address", "SWITZERLAND"),
            )
        ),
    }
    data = whois_lookup.lookup_as_via_ripe("AS3303", session=make_session(routes))

    assert data == {
        "asNumber": "AS3303",
        "orgName": "Swisscom (Schweiz) AG",
        "nocEmail": "noc@swisscom.com",
        "country": "CH",
        "address": "Alte Tiefenaustrasse 6",
        "postalCode": "3048",
        "city": "Worblaufen",
    }
    assert whois_lookup.format_address(data) == "Alte Tiefenaustrasse 6, 3048 Worblaufen, Switzerland"


def test_ripe_miss_falls_back_to_peeringdb(make_session, ok):
    routes = {
        f"{API}/net": ok({"data": [{"asn": 15169, "name": "Google LLC", "policy_email": "peering@google.com"}]}),
    }
    session = make_session(routes)

    data = whois_lookup.lookup_as_via_ripe("AS15169", session=session)

    assert data == {"asNumber": "AS15169", "orgName": "Google LLC", "nocEmail": "peering@google.com"}
    assert session.calls[-1][2]["params"] == {"asn": "15169"}


def test_ripe_network_error_returns_none(make_session):
    routes = {f"{RIPE}/aut-num/AS1.json": requests.exceptions.ConnectionError("down")}
    assert whois_lookup.lookup_as_via_ripe("1", session=make_session(routes)) is None


def test_lookup_by_network_id(make_session, ok):
    routes = {
        f"{API}/net/42": ok({"data": [{"id": 42, "asn": 3303, "name": "Swisscom"}]}),
        f"{RIPE}/aut-num/AS3303.json": ok(attributes(("as-name", "SWISSCOM"))),
    }
    data = whois_lookup.lookup_by_network_id(42, session=make_session(routes))
    assert data == {"asNumber": "AS3303", "orgName": "SWISSCOM"}


def test_lookup_by_network_id_without_asn(make_session, ok):
    routes = {f"{API}/net/42": ok({"data": [{"id": 42}]})}
    assert whois_lookup.lookup_by_network_id(42, session=make_session(routes)) is None


def test_cli_lookup_walks_servers():
    calls = []

    def runner(cmd, **kwargs):
        calls.append(cmd)
        if cmd[2] == "whois.arin.net":
            return SimpleNamespace(stdout="ASNumber: 15169\norg-name: Google LLC\n")
        return SimpleNamespace(stdout="% No entries found\n")

    data = whois_lookup.lookup_as_cli("AS15169", runner=runner)

    assert [c[2] for c in calls] == ["whois.ripe.net", "whois.arin.net"]
    assert calls[0] == ["whois", "-h", "whois.ripe.net", "AS15169"]
    assert data == {"orgName": "Google LLC"}


def test_cli_lookup_missing_binary():
    def runner(cmd, **kwargs):
        raise FileNotFoundError("whois")

    assert whois_lookup.lookup_as_cli("3303", runner=runner) is None


def test_cli_lookup_timeout():
    def runner(cmd, **kwargs):
        raise subprocess.TimeoutExpired(cmd, 1)

    assert whois_lookup.lookup_as_cli("3303", runner=runner) is None


def test_format_address_variants():
    assert whois_lookup.format_address({}) == ""
    assert whois_lookup.format_address({"city": "Milano", "country": "IT"}) == "Milano, Italy"
    assert whois_lookup.format_address({"address": "1 Main St", "country": "NL"}) == "1 Main St, NL"
