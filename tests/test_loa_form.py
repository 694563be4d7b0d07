from datetime import datetime

import settings_store
from loa_form import ConnectionType, build_loa_context, validate_loa_form

FORM = {
    "companyName": "Acme Networks",
    "issueDate": "2025-03-14",
    "datacenterName": "Equinix ZH2",
    "datacenterAddress": "Josefstrasse 225, 8005 Zurich",
    "siteCode": "ZH2",
    "requestingCompany": "Swisscom (Schweiz) AG",
    "ourCage": "ZH2:01:000123",
    "ourCabinet": "0102",
    "ourPatchPanel": "PP:0201:0102:1374601",
    "ourPort": "5",
    "connectionType": "single-mode",
    "connectorType": "LC/UPC",
    "specialInstructions": "",
}


def test_valid_form():
    form, errors = validate_loa_form(FORM)
    assert errors == []
    assert form.connectionType is ConnectionType.SINGLE_MODE


def test_missing_and_invalid_fields_are_reported():
    data = dict(FORM, ourPort="", connectorType="ST")
    del data["siteCode"]

    form, errors = validate_loa_form(data)

    assert form is None
    assert sorted(e["field"] for e in errors) == ["connectorType", "ourPort", "siteCode"]
    assert all(e["message"] for e in errors)


def test_context_uses_company_settings():
    settings = settings_store.default_settings()
    settings["company"]["name"] = "Acme AG"
    form, _ = validate_loa_form(FORM)

    context = build_loa_context(form, settings, now=datetime(2025, 3, 14, 10, 30, 5))

    data = context["data"]
    assert data["companyName"] == "Acme AG"
    assert data["vatNumber"] == "VAT-000000"
    assert data["asNumber"] == "AS00000"
    assert data["expiryDate"] == "2026-03-14"
    assert data["connectorType"] == "LC/UPC"
    assert "specialInstructions" not in data
    assert context["signatory"]["name"] == "Authorized Person Name"
    assert context["footer"].startswith("This Letter of Authorization")
    assert context["fileName"] == "LOA_Acme_Networks_20250314_103005.pdf"


def test_context_respects_template_flags():
    settings = settings_store.default_settings()
    settings["loaTemplate"].update(includeVatNumber=False, includeAsNumber=False, defaultValidityDays=0)
    form, _ = validate_loa_form(dict(FORM, expiryDate=""))

    data = build_loa_context(form, settings)["data"]

    assert "vatNumber" not in data
    assert "asNumber" not in data
    assert "expiryDate" not in data


def test_explicit_expiry_is_kept():
    form, _ = validate_loa_form(dict(FORM, expiryDate="2025-06-30"))
    data = build_loa_context(form, settings_store.default_settings())["data"]
    assert data["expiryDate"] == "2025-06-30"
