"""LOA form validation and document context."""

from datetime import date, datetime, timedelta
from enum import Enum
from typing import Annotated, Any, Dict, List, Optional, Tuple

from pydantic import BaseModel, Field, ValidationError


class ConnectionType(str, Enum):
    SINGLE_MODE = "single-mode"
    MULTI_MODE = "multi-mode"
    COPPER = "copper"


class ConnectorType(str, Enum):
    LC = "LC"
    LC_UPC = "LC/UPC"
    LC_APC = "LC/APC"
    SC = "SC"
    SC_UPC = "SC/UPC"
    SC_APC = "SC/APC"
    RJ45 = "RJ45"
    MPO = "MPO"


RequiredStr = Annotated[str, Field(min_length=1)]


class LoaForm(BaseModel):
    # Company
    companyName: RequiredStr
    companyLogo: Optional[str] = None
    vatNumber: Optional[str] = None
    companyRegistration: Optional[str] = None

    # Authorization
    issueDate: RequiredStr
    expiryDate: Optional[str] = None

    # Datacenter
    datacenterName: RequiredStr
    datacenterAddress: RequiredStr
    siteCode: RequiredStr

    # Requesting party
    requestingCompany: RequiredStr
    requestingAddress: Optional[str] = None

    # Our equipment location
    ourCage: RequiredStr
    ourRoom: Optional[str] = None
    ourCabinet: RequiredStr
    ourPatchPanel: RequiredStr
    ourPort: RequiredStr

    # Technical
    connectionType: ConnectionType
    connectorType: ConnectorType

    specialInstructions: Optional[str] = None


def validate_loa_form(data: Dict[str, Any]) -> Tuple[Optional[LoaForm], List[Dict[str, str]]]:
    """Return the parsed form, or ``None`` and a list of field errors."""
    try:
        return LoaForm(**data), []
    except ValidationError as e:
        errors = [
            {"field": ".".join(str(p) for p in err["loc"]), "message": err["msg"]}
            for err in e.errors()
        ]
        return None, errors


def _parse_date(value: str) -> date:
    return datetime.fromisoformat(value[:10]).date()


def build_loa_context(form: LoaForm, settings: Dict[str, Any], now: Optional[datetime] = None) -> Dict[str, Any]:
    """Everything the document template needs: form fields, company identity,
    signatory, validity period and a download file name.
    """
    if now is None:
        now = datetime.now()
    company = settings.get("company") or {}
    template = settings.get("loaTemplate") or {}

    fields = {k: v for k, v in form.model_dump(mode="json").items() if v not in ("", None)}
    fields["companyName"] = company.get("name") or form.companyName
    if template.get("includeVatNumber", True) and company.get("vatNumber"):
        fields["vatNumber"] = company["vatNumber"]
    if template.get("includeAsNumber", True) and company.get("asNumber"):
        fields["asNumber"] = company["asNumber"]

    if not fields.get("expiryDate"):
        days = int(template.get("defaultValidityDays") or 0)
        if days > 0:
            try:
                issued = _parse_date(form.issueDate)
            except ValueError:
                issued = now.date()
            fields["expiryDate"] = (issued + timedelta(days=days)).isoformat()

    safe_name = "_".join(form.companyName.split())
    return {
        "data": fields,
        "company": company,
        "signatory": {
            "name": template.get("authorizedSignatory"),
            "title": template.get("signatoryTitle"),
            "email": template.get("signatoryEmail"),
        },
        "footer": template.get("customFooterText"),
        "fileName": f"LOA_{safe_name}_{now.strftime('%Y%m%d_%H%M%S')}.pdf",
    }
