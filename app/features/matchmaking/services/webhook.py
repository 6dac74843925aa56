"""
Scanner webhook normalisation and signature checks.

Supported vendor shapes:
    bare badge  "<id>"
    canonical   {"scanId", "scanner", "target" | "badgeId", "timestamp", "location"}
    QR          {"qr_data": "BADGE:<id>", "scanner", "zone"}
    RFID / NFC  {"rfid" | "nfc": "<id>", "reader", "gate"}

Vendor shapes carry no scan id, so one is derived from a sha256 of the
canonicalised payload; a re-delivered payload therefore dedups. A bare
badge id is keyed on its receive time instead. Scans that do not name a
scanner are recorded against DEFAULT_SCANNER_ID.
"""

import hashlib
import hmac
import json
import re
from datetime import datetime
from typing import Any

from ..domain.errors import InvalidInputError
from ..domain.models import ScanEvent
from .payloads import parse_scan

SIGNATURE_HEADER = "x-scan-signature"
SIGNATURE_PREFIX = "sha256="

_QR_BADGE = re.compile(r"^BADGE:(?P<badge>[\w-]+)$")

# Scanner id recorded when the vendor does not identify the device
DEFAULT_SCANNER_ID = "webhook"
_SCANNER_KEYS = ("scanner_actor_id", "scannerActorId", "scanner", "scannerId", "scanner_id")


def compute_signature(raw: bytes, secret: str) -> str:
    return hmac.new(secret.encode(), raw, hashlib.sha256).hexdigest()


def signature_matches(raw: bytes, signature: str | None, secret: str) -> bool:
    if not signature:
        return False
    if signature.startswith(SIGNATURE_PREFIX):
        signature = signature[len(SIGNATURE_PREFIX) :]
    return hmac.compare_digest(compute_signature(raw, secret), signature.strip().lower())


def derive_scan_id(payload: Any) -> str:
    canonical = json.dumps(payload, sort_keys=True, separators=(",", ":"), default=str)
    return "sha256:" + hashlib.sha256(canonical.encode()).hexdigest()


def normalize_vendor_payload(payload: Any, received_at: datetime) -> dict[str, Any]:
    """Map any supported vendor shape onto the canonical scan fields."""
    if isinstance(payload, str):
        badge = payload.strip()
        if not badge:
            raise InvalidInputError("Badge id must not be empty")
        # Nothing but the badge to key on, so the receive time tells scans apart
        return {
            "scan_id": derive_scan_id({"badge": badge, "received_at": received_at.isoformat()}),
            "scanner": DEFAULT_SCANNER_ID,
            "target": badge,
            "timestamp": received_at,
        }

    if not isinstance(payload, dict):
        raise InvalidInputError("Unsupported scan data format")

    if "qr_data" in payload:
        match = _QR_BADGE.match(str(payload["qr_data"]).strip())
        if not match:
            raise InvalidInputError("QR payload must look like BADGE:<id>")
        normalized = {
            "scanner": payload.get("scanner"),
            "target": match["badge"],
            "location": payload.get("zone"),
        }
    elif payload.get("rfid") or payload.get("nfc"):
        normalized = {
            "scanner": payload.get("reader"),
            "target": payload.get("rfid") or payload.get("nfc"),
            "location": payload.get("gate"),
        }
    else:
        normalized = dict(payload)

    if not any(normalized.get(key) for key in _SCANNER_KEYS):
        normalized = {k: v for k, v in normalized.items() if k not in _SCANNER_KEYS}
        normalized["scanner"] = DEFAULT_SCANNER_ID

    for key in ("timestamp", "occurred_at", "occurredAt", "time"):
        if payload.get(key) is not None:
            normalized.setdefault("timestamp", payload[key])
            break
    else:
        normalized["timestamp"] = received_at

    if not (normalized.get("scan_id") or normalized.get("scanId")):
        normalized["scan_id"] = derive_scan_id(payload)
    return normalized


def parse_webhook_scan(payload: Any, received_at: datetime) -> ScanEvent:
    return parse_scan(normalize_vendor_payload(payload, received_at))
