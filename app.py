#!/usr/bin/env python3
"""HTTP API behind the LOA generator form."""

import os
import subprocess
import sys
from typing import Any, Dict, Iterable, Optional

from dotenv import load_dotenv
from flask import Flask, Response, jsonify, request
from loguru import logger

load_dotenv()

import datacenter_store  # noqa: E402
import equinix_api  # noqa: E402
import peeringdb  # noqa: E402
import settings_store  # noqa: E402
import sync_service  # noqa: E402
import whois_lookup  # noqa: E402
from loa_form import build_loa_context, validate_loa_form  # noqa: E402
from port_reconciler import PanelSizeError  # noqa: E402

LOG_FILE = os.getenv("LOG_FILE", "logs/loa_generator.log")
HOST = os.getenv("HOST", "127.0.0.1")
PORT = int(os.getenv("PORT", 3000))

_TRUE_VALUES = {"true", "1", "yes"}
_FALSE_VALUES = {"false", "0", "no"}


def configure_logging(log_file: Optional[str] = LOG_FILE, level: str = "INFO") -> None:
    logger.remove()
    logger.add(sys.stderr, format="{time} {level} {message}", level=level)
    if log_file:
        logger.add(
            log_file,
            rotation="5 MB",
            retention=3,
            format="{time:YYYY-MM-DD HH:mm:ss} | {level} | {message}",
            level=level,
            enqueue=True,
            backtrace=False,
            diagnose=False,
        )


def _error(message: str, status: int, **extra):
    body: Dict[str, Any] = {"error": message}
    body.update(extra)
    return jsonify(body), status


def _int_arg(name: str) -> Optional[int]:
    value = request.args.get(name)
    if value is None:
        return None
    try:
        return int(value)
    except ValueError:
        return None


def _flag(body: Dict[str, Any], names: Iterable[str], default: bool) -> bool:
    """Read the first of ``names`` present in ``body`` as a boolean.

    Real booleans pass through, ``"true"``/``"false"`` style strings are
    parsed, anything else raises ``ValueError``.
    """
    for name in names:
        if name not in body:
            continue
        value = body[name]
        if isinstance(value, bool):
            return value
        text = value.strip().lower() if isinstance(value, str) else None
        if text in _TRUE_VALUES:
            return True
        if text in _FALSE_VALUES:
            return False
        raise ValueError(f"{name} must be a boolean")
    return default


def create_app(config: Optional[Dict[str, Any]] = None) -> Flask:
    app = Flask(__name__)
    app.config.update(
        DATACENTER_DB_FILE=datacenter_store.DATACENTER_DB_FILE,
        SETTINGS_FILE=settings_store.SETTINGS_FILE,
        DEFAULT_PATCH_PANEL_ID=sync_service.DEFAULT_PATCH_PANEL_ID,
        DEFAULT_DATACENTER_ID=sync_service.DEFAULT_DATACENTER_ID,
    )
    if config:
        app.config.update(config)

    # One address cache for the life of the process.
    if "PEERINGDB_CLIENT" not in app.config:
        app.config["PEERINGDB_CLIENT"] = peeringdb.client_from_env(address_cache=peeringdb.AddressCache())
    if "EQUINIX_CLIENT" not in app.config:
        app.config["EQUINIX_CLIENT"] = equinix_api.client_from_env()
    app.config.setdefault("WHOIS_SESSION", None)
    app.config.setdefault("WHOIS_RUNNER", subprocess.run)

    @app.errorhandler(equinix_api.AvailabilityFetchError)
    def availability_failed(e):
        logger.error(f"Availability fetch failed ({e.reason}): {e}")
        return _error("Failed to fetch patch panel data from Equinix", 502, reason=e.reason, detail=str(e))

    @app.errorhandler(datacenter_store.DatacenterNotFound)
    def datacenter_not_found(e):
        return _error(f"Datacenter {e.args[0]} not found", 404)

    @app.errorhandler(datacenter_store.DatacenterStoreError)
    def store_failed(e):
        logger.error(f"Datacenter store error: {e}")
        return _error("Failed to access datacenter configuration", 500, detail=str(e))

    @app.errorhandler(PanelSizeError)
    def panel_size_invalid(e):
        logger.error(f"Panel size configuration error: {e}")
        return _error("Invalid panel size configuration", 500, detail=str(e))

    @app.get("/health")
    def health():
        return jsonify({"status": "ok"})

    @app.get("/api/datacenter-config")
    def get_datacenters():
        datacenters = datacenter_store.load_datacenters(app.config["DATACENTER_DB_FILE"])
        query = request.args.get("query")
        if query:
            datacenters = datacenter_store.search_datacenters(datacenters, query)
        return jsonify({"datacenters": datacenters})

    @app.post("/api/datacenter-config")
    def save_datacenters():
        body = request.get_json(silent=True) or {}
        datacenters = body.get("datacenters")
        if not isinstance(datacenters, list) or not all(isinstance(dc, dict) for dc in datacenters):
            return _error("datacenters must be a list of objects", 400)
        datacenter_store.save_datacenters(app.config["DATACENTER_DB_FILE"], datacenters)
        return jsonify({"success": True, "message": "Configuration saved successfully"})

    @app.get("/api/datacenter-config/options")
    def datacenter_options():
        datacenters = datacenter_store.load_datacenters(app.config["DATACENTER_DB_FILE"])
        return jsonify(datacenter_store.datacenter_options(datacenters))

    @app.get("/api/datacenter-config/lookup")
    def datacenter_lookup():
        name = request.args.get("name")
        if not name:
            return _error("Missing name parameter", 400)
        datacenters = datacenter_store.load_datacenters(app.config["DATACENTER_DB_FILE"])
        datacenter = datacenter_store.find_datacenter_by_name(datacenters, name)
        if datacenter is None:
            return _error(f"No datacenter matches {name}", 404)
        return jsonify(datacenter)

    @app.get("/api/datacenter-config/<datacenter_id>/requesters")
    def datacenter_requesters(datacenter_id):
        datacenters = datacenter_store.load_datacenters(app.config["DATACENTER_DB_FILE"])
        return jsonify(datacenter_store.common_requesters(datacenters, datacenter_id))

    @app.post("/api/datacenter-config/import")
    def import_facility():
        body = request.get_json(silent=True) or {}
        facility_id = body.get("facilityId")
        if isinstance(facility_id, bool) or not isinstance(facility_id, int):
            return _error("facilityId must be an integer", 400)
        facility = app.config["PEERINGDB_CLIENT"].get_facility(facility_id)
        if not facility:
            return _error(f"Facility {facility_id} not found", 404)

        path = app.config["DATACENTER_DB_FILE"]
        datacenters = datacenter_store.load_datacenters(path)
        datacenter = datacenter_store.datacenter_from_facility(facility)
        datacenters.append(datacenter)
        datacenter_store.save_datacenters(path, datacenters)
        logger.info(f"Imported facility {facility_id} as {datacenter['id']}")
        return jsonify(datacenter), 201

    @app.get("/api/settings")
    def get_settings():
        try:
            return jsonify(settings_store.load_settings(app.config["SETTINGS_FILE"]))
        except settings_store.SettingsError as e:
            logger.error(f"Error reading settings: {e}")
            return _error("Failed to load settings", 500)

    @app.post("/api/settings")
    def post_settings():
        try:
            settings_store.save_settings(app.config["SETTINGS_FILE"], request.get_json(silent=True))
        except settings_store.SettingsError as e:
            return _error(str(e), 400)
        return jsonify({"success": True, "message": "Settings saved successfully"})

    @app.put("/api/settings")
    def put_settings():
        settings = settings_store.reset_settings(app.config["SETTINGS_FILE"])
        return jsonify({"success": True, "message": "Settings reset to defaults", "settings": settings})

    @app.get("/api/settings/export")
    def export_settings():
        try:
            settings = settings_store.load_settings(app.config["SETTINGS_FILE"])
        except settings_store.SettingsError as e:
            logger.error(f"Error reading settings: {e}")
            return _error("Failed to load settings", 500)
        return Response(
            settings_store.export_settings(settings),
            mimetype="application/json",
            headers={"Content-Disposition": "attachment; filename=company-settings.json"},
        )

    @app.post("/api/settings/import")
    def import_settings():
        try:
            settings = settings_store.import_settings(request.get_data(as_text=True))
            settings_store.save_settings(app.config["SETTINGS_FILE"], settings)
        except settings_store.SettingsError as e:
            return _error(str(e), 400)
        return jsonify({"success": True, "message": "Settings imported successfully", "settings": settings})

    @app.get("/api/peeringdb/search")
    def peeringdb_search():
        client = app.config["PEERINGDB_CLIENT"]
        kind = request.args.get("type")
        query = request.args.get("query")
        facility_id = _int_arg("facilityId")

        if kind == "facilities" and query:
            facilities = client.search_facilities(query)
            return jsonify([dict(fac, label=peeringdb.format_facility_option(fac)) for fac in facilities])
        if kind == "swiss":
            return jsonify(client.search_swiss_datacenters())
        if kind == "facility" and facility_id is not None:
            return jsonify(client.get_facility(facility_id))
        if kind == "ixs" and facility_id is not None:
            return jsonify(client.get_ixs_in_facility(facility_id))
        if kind == "networks" and facility_id is not None:
            return jsonify(client.get_networks_in_facility(facility_id))
        if kind == "carriers" and facility_id is not None:
            return jsonify(client.get_carriers_in_facility(facility_id))
        if kind == "network" and _int_arg("networkId") is not None:
            return jsonify(client.get_network_details(_int_arg("networkId")))
        if kind == "ix" and _int_arg("ixId") is not None:
            return jsonify(client.get_ix(_int_arg("ixId")))
        if kind == "asn" and _int_arg("asn") is not None:
            return jsonify(client.search_by_asn(_int_arg("asn")))
        return _error("Invalid request parameters", 400)

    @app.get("/api/whois")
    def whois():
        asn = request.args.get("asn")
        net_id = _int_arg("netId")
        if not asn and net_id is None:
            return _error("Missing asn or netId parameter", 400)

        session = app.config["WHOIS_SESSION"]
        if net_id is not None:
            data = whois_lookup.lookup_by_network_id(net_id, session)
        else:
            data = whois_lookup.lookup_as_via_ripe(asn, session)
            if not data:
                data = whois_lookup.lookup_as_cli(asn, runner=app.config["WHOIS_RUNNER"])
        if not data:
            return _error("No data found", 404)
        data["formattedAddress"] = whois_lookup.format_address(data)
        return jsonify(data)

    @app.get("/api/equinix")
    def equinix():
        client = app.config["EQUINIX_CLIENT"]
        action = request.args.get("action") or "details"
        if action == "list":
            cabinet_id = request.args.get("cabinetId")
            account_number = request.args.get("accountNumber")
            if not cabinet_id or not account_number:
                return _error("cabinetId and accountNumber are required", 400)
            return jsonify({"success": True, "data": client.list_patch_panels(cabinet_id, account_number)})
        if action == "details":
            panel_id = request.args.get("patchPanelId") or app.config["DEFAULT_PATCH_PANEL_ID"]
            return jsonify({"success": True, "data": client.get_patch_panel(panel_id)})
        return _error(f"Unknown action: {action}", 400)

    @app.post("/api/equinix/sync")
    def equinix_sync():
        body = request.get_json(silent=True) or {}
        try:
            preserve = _flag(body, ("preserveOccupantInfo", "preserveCustomerInfo"), True)
            keep_reserved = _flag(body, ("keepReserved",), False)
        except ValueError as e:
            return _error(str(e), 400)
        report = sync_service.sync_datacenter(
            app.config["EQUINIX_CLIENT"],
            datacenter_id=body.get("datacenterId") or app.config["DEFAULT_DATACENTER_ID"],
            patch_panel_id=body.get("patchPanelId") or app.config["DEFAULT_PATCH_PANEL_ID"],
            store_path=app.config["DATACENTER_DB_FILE"],
            preserve_occupant_info=preserve,
            keep_reserved=keep_reserved,
        )
        return jsonify(report)

    @app.get("/api/equinix/sync")
    def equinix_sync_status():
        datacenter_id = request.args.get("datacenterId") or app.config["DEFAULT_DATACENTER_ID"]
        return jsonify(sync_service.sync_status(datacenter_id, app.config["DATACENTER_DB_FILE"]))

    @app.post("/api/loa")
    def loa():
        form, errors = validate_loa_form(request.get_json(silent=True) or {})
        if errors:
            return jsonify({"errors": errors}), 400
        try:
            settings = settings_store.load_settings(app.config["SETTINGS_FILE"])
        except settings_store.SettingsError as e:
            logger.error(f"Falling back to default settings: {e}")
            settings = settings_store.default_settings()
        return jsonify(build_loa_context(form, settings))

    return app


if __name__ == "__main__":
    configure_logging()
    application = create_app()
    logger.info(f"Starting LOA generator API on {HOST}:{PORT}")
    application.run(host=HOST, port=PORT)
