"""Company settings persisted as a JSON file."""

import copy
import json
import os
import tempfile
from typing import Any, Dict, Optional

from loguru import logger

Settings = Dict[str, Any]

SETTINGS_FILE = os.getenv("SETTINGS_FILE", "config/company-settings.json")

REQUIRED_SECTIONS = ("company", "loaTemplate", "apis", "features")

DEFAULT_SETTINGS: Settings = {
    "company": {
        "name": "Your Company Name",
        "legalName": "Your Company Legal Name",
        "vatNumber": "VAT-000000",
        "address": "Your Street Address",
        "city": "Your City",
        "postalCode": "00000",
        "country": "Your Country",
        "phone": "+00 00 000 00 00",
        "email": "noc@example.com",
        "website": "https://www.example.com",
        "asNumber": "AS00000",
        "logoUrl": "/assets/logo.png",
    },
    "loaTemplate": {
        "authorizedSignatory": "Authorized Person Name",
        "signatoryTitle": "Title/Position",
        "signatoryEmail": "signatory@example.com",
        "defaultValidityDays": 365,
        "includeVatNumber": True,
        "includeAsNumber": True,
        "customFooterText": (
            "This Letter of Authorization is valid only for the specific "
            "cross-connect detailed above."
        ),
    },
    "apis": {
        "equinix": {
            "enabled": False,
            "clientId": "",
            "clientSecret": "",
            "apiUrl": "https://api.equinix.com",
        },
        "peeringDb": {
            "enabled": True,
            "apiKey": "",
            "apiUrl": "https://www.peeringdb.com/api",
        },
        "whois": {
            "enabled": True,
            "defaultServer": "whois.ripe.net",
        },
    },
    "features": {
        "autoWhoisLookup": True,
        "equinixSync": False,
        "pdfGeneration": True,
        "emailNotifications": False,
    },
}


class SettingsError(Exception):
    """Raised for unreadable or structurally invalid settings."""


def default_settings() -> Settings:
    return copy.deepcopy(DEFAULT_SETTINGS)


def merge_with_defaults(settings: Settings, defaults: Optional[Settings] = None) -> Settings:
    """Overlay ``settings`` on the defaults so every known key is present."""
    merged = copy.deepcopy(defaults if defaults is not None else DEFAULT_SETTINGS)
    for key, value in settings.items():
        if isinstance(value, dict) and isinstance(merged.get(key), dict):
            merged[key] = merge_with_defaults(value, merged[key])
        else:
            merged[key] = value
    return merged


def validate_settings(settings: Any) -> None:
    if not isinstance(settings, dict):
        raise SettingsError("Invalid settings structure")
    missing = [s for s in REQUIRED_SECTIONS if not isinstance(settings.get(s), dict)]
    if missing:
        raise SettingsError(f"Invalid settings structure, missing: {', '.join(missing)}")


def _write(path: str, settings: Settings) -> None:
    directory = os.path.dirname(os.path.abspath(path))
    os.makedirs(directory, exist_ok=True)
    fd, tmp_path = tempfile.mkstemp(prefix=".company-settings.", suffix=".tmp", dir=directory)
    try:
        with os.fdopen(fd, "w", encoding="utf-8") as f:
            json.dump(settings, f, indent=2, ensure_ascii=False)
        os.replace(tmp_path, path)
    except (OSError, TypeError, ValueError) as e:
        if os.path.exists(tmp_path):
            os.unlink(tmp_path)
        raise SettingsError(f"Failed to write {path}: {e}") from e


def load_settings(path: Optional[str] = None) -> Settings:
    """Read settings, creating the file from defaults when it is missing."""
    path = path or SETTINGS_FILE
    try:
        with open(path, "r", encoding="utf-8") as f:
            stored = json.load(f)
    except FileNotFoundError:
        logger.info(f"Settings file {path} not found, writing defaults")
        settings = default_settings()
        _write(path, settings)
        return settings
    except json.JSONDecodeError as e:
        raise SettingsError(f"Failed to parse {path}: {e}") from e

    if not isinstance(stored, dict):
        raise SettingsError(f"{path} does not contain a settings object")
    return merge_with_defaults(stored)


def save_settings(path: Optional[str], settings: Settings) -> None:
    validate_settings(settings)
    path = path or SETTINGS_FILE
    _write(path, settings)
    logger.info(f"Settings saved to {path}")


def reset_settings(path: Optional[str] = None) -> Settings:
    path = path or SETTINGS_FILE
    settings = default_settings()
    _write(path, settings)
    logger.info(f"Settings at {path} reset to defaults")
    return settings


def export_settings(settings: Settings) -> str:
    return json.dumps(settings, indent=2, ensure_ascii=False)


def import_settings(text: str) -> Settings:
    try:
        settings = json.loads(text)
    except json.JSONDecodeError as e:
        raise SettingsError(f"Failed to import settings: {e}") from e
    validate_settings(settings)
    return settings
