import pytest
import requests

import peeringdb
from peeringdb import AddressCache, PeeringDBClient

API = "https://www.peeringdb.com/api"


def make_client(make_session, routes, **kwargs):
    session = make_session(routes)
    kwargs.setdefault("delay", 0)
    return PeeringDBClient(session=session, **kwargs), session


@pytest.mark.parametrize(
    "query, expected",
    [
        ("Equinix CH", ("Equinix", "CH")),
        ("Interxion Germany", ("Interxion", "DE")),
        ("Telehouse uk", ("Telehouse", "GB")),
        ("Equinix ZH2", ("Equinix ZH2", None)),
        ("Switch", ("Switch", None)),
    ],
)
def test_split_country_filter(query, expected):
    assert peeringdb.split_country_filter(query) == expected


def test_search_facilities_sends_country_and_sorts(make_session, ok):
    facilities = [
        {"id": 1, "name": "Equinix FR5", "country": "FR"},
        {"id": 2, "name": "Equinix ZH2", "country": "CH"},
    ]
    client, session = make_client(make_session, {f"{API}/fac": ok({"data": facilities})}, api_key="k")

    result = client.search_facilities("Equinix CH")

    assert [f["id"] for f in result] == [2, 1]
    _, _, kwargs = session.calls[0]
    assert kwargs["params"] == {"name_search": "Equinix", "country": "CH"}
    assert kwargs["headers"]["Authorization"] == "Api-Key k"


def test_no_api_key_sends_no_authorization(make_session, ok):
    client, session = make_client(make_session, {f"{API}/fac": ok({"data": []})})
    client.search_facilities("Equinix")
    assert "Authorization" not in session.calls[0][2]["headers"]


def test_failures_come_back_empty(make_session):
    client, _ = make_client(make_session, {f"{API}/fac": requests.exceptions.Timeout("slow")})

    assert client.search_facilities("Equinix") == []
    assert client.get_facility(99) is None
    assert client.search_by_asn(3303) is None
    assert client.get_networks_in_facility(58) == []


def test_search_by_asn(make_session, ok):
    client, session = make_client(make_session, {f"{API}/net": ok({"data": [{"id": 7, "asn": 3303}]})})
    assert client.search_by_asn(3303) == {"id": 7, "asn": 3303}
    assert session.calls[0][2]["params"] == {"asn": 3303}


def test_networks_in_facility_are_fetched_and_sorted(make_session, ok):
    sleeps = []
    routes = {
        f"{API}/netfac": ok({"data": [{"net_id": n} for n in range(1, 13)] + [{"net_id": 3}]}),
    }
    for n in range(1, 13):
        name = "" if n == 5 else f"{'abcdefghijkl'[12 - n]}-net"
        routes[f"{API}/net/{n}"] = ok({"data": [{"id": n, "name": name}]})
    client, session = make_client(make_session, routes, delay=0.1, sleep=sleeps.append)

    networks = client.get_networks_in_facility(58)

    assert session.calls[0][2]["params"] == {"fac_id": 58, "limit": 1000}
    assert len(networks) == 11
    names = [n["name"] for n in networks]
    assert names == sorted(names)
    assert sleeps == [0.2]


def test_ixs_in_facility(make_session, ok):
    routes = {
        f"{API}/ixfac": ok({"data": [{"ix_id": 10}, {"ix_id": 11}]}),
        f"{API}/ix/10": ok({"data": [{"id": 10, "name": "SwissIX"}]}),
    }
    client, _ = make_client(make_session, routes)

    assert client.get_ixs_in_facility(58) == [{"id": 10, "name": "SwissIX"}]


def test_network_details_uses_own_address_first(make_session, ok):
    net = {"id": 7, "asn": 3303, "address": "Binzring 17, 8045 Zurich"}
    client, session = make_client(make_session, {f"{API}/net/7": ok({"data": [net]})})

    details = client.get_network_details(7)

    assert details["whois_address"] == "Binzring 17, 8045 Zurich"
    assert len(session.calls) == 1


def test_network_details_falls_back_to_ripe_and_caches(make_session, ok):
    ripe = "https://rest.db.ripe.net/ripe"
    routes = {
        f"{API}/net/7": ok({"data": [{"id": 7, "asn": 3303, "org_id": 4}]}),
        f"{API}/org/4": ok({"data": [{"id": 4}]}),
        f"{API}/poc": ok({"data": [{"role": "NOC"}]}),
        f"{ripe}/aut-num/AS3303.json": ok(
            {"objects": {"object": [{"attributes": {"attribute": [{"name": "org", "value": "ORG-SA1-RIPE"}]}}]}}
        ),
        f"{ripe}/organisation/ORG-SA1-RIPE.json": ok(
            {
                "objects": {
                    "object": [
                        {
                            "attributes": {
                                "attribute": [
                                    {"name": "org-name", "value": "Swisscom AG"},
                                    {"name": "address", "value": "Alte Tiefenaustrasse 6"},
                                    {"name": "address", "value": "3048 Worblaufen"},
                                ]
                            }
                        }
                    ]
                }
            }
        ),
    }
    cache = AddressCache()
    client, session = make_client(make_session, routes, address_cache=cache)

    details = client.get_network_details(7)

    assert details["whois_address"] == "Alte Tiefenaustrasse 6, 3048 Worblaufen"
    assert details["whois_org"] == "Swisscom AG"
    assert cache.get(7) == "Alte Tiefenaustrasse 6, 3048 Worblaufen"

    calls_before = len(session.calls)
    again = client.get_network_details(7)
    assert again["whois_address"] == "Alte Tiefenaustrasse 6, 3048 Worblaufen"
    assert len(session.calls) == calls_before + 1


def test_network_details_ripestat_remarks(make_session, ok):
    routes = {
        f"{API}/net/8": ok({"data": [{"id": 8, "asn": 65001}]}),
        peeringdb.RIPESTAT_URL: ok(
            {
                "data": {
                    "records": [
                        [
                            {"key": "remarks", "value": "Peering policy: open\nVia Roma 1, 20100 Milano"},
                            {"key": "descr", "value": "Main Street 5"},
                        ]
                    ]
                }
            }
        ),
    }
    client, _ = make_client(make_session, routes)

    assert client.get_network_details(8)["whois_address"] == "Via Roma 1, 20100 Milano"


def test_network_details_without_address(make_session, ok):
    client, _ = make_client(make_session, {f"{API}/net/9": ok({"data": [{"id": 9}]})})
    details = client.get_network_details(9)
    assert details == {"id": 9}
    assert 9 not in client.address_cache


def test_unknown_network(make_session):
    client, _ = make_client(make_session, {})
    assert client.get_network_details(404) is None


def test_format_helpers():
    facility = {"name": "Equinix ZH2", "address1": "Josefstrasse 225", "city": "Zurich", "zipcode": "8005", "country": "CH"}
    assert peeringdb.format_facility_option(facility) == "Equinix ZH2 - Zurich, CH"
    assert peeringdb.format_facility_address(facility) == "Josefstrasse 225, Zurich, 8005, CH"


def test_ripe_attribute_helpers():
    assert peeringdb.ripe_attributes({}) == []
    attrs = [{"name": "as-name", "value": "SWISSCOM"}]
    assert peeringdb.first_attribute(attrs, "as-name") == "SWISSCOM"
    assert peeringdb.first_attribute(attrs, "org") is None
