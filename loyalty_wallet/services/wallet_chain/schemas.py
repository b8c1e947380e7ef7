"""
JSON Schema contracts for the three wallet artifact descriptors.

Each platform has a required-field contract checked by its encoder. Apple and
Google also have a strict variant used by the verification battery to catch
placeholder or partially filled descriptors.
"""

import logging
from typing import Any, Dict, List

import jsonschema

from .exceptions import EncodingError

logger = logging.getLogger(__name__)

_NON_EMPTY = {"type": "string", "minLength": 1}
_RGB = {"type": "string", "pattern": r"^rgb\(\s*\d{1,3}\s*,\s*\d{1,3}\s*,\s*\d{1,3}\s*\)$"}

_PASS_FIELD = {
    "type": "object",
    "required": ["key", "label", "value"],
    "properties": {
        "key": _NON_EMPTY,
        "label": {"type": "string"},
        "value": {"type": ["string", "number"]},
        "dateStyle": {"type": "string", "enum": ["PKDateStyleShort", "PKDateStyleMedium", "PKDateStyleLong"]},
    },
}

_PASS_STYLE_BLOCK = {
    "type": "object",
    "required": ["primaryFields", "secondaryFields", "backFields"],
    "properties": {
        "primaryFields": {"type": "array", "minItems": 1, "items": _PASS_FIELD},
        "secondaryFields": {"type": "array", "minItems": 1, "items": _PASS_FIELD},
        "auxiliaryFields": {"type": "array", "items": _PASS_FIELD},
        "backFields": {"type": "array", "items": _PASS_FIELD},
    },
}

# Native pass A: Apple Wallet pass.json
APPLE_PASS_SCHEMA = {
    "type": "object",
    "required": [
        "formatVersion", "passTypeIdentifier", "serialNumber",
        "teamIdentifier", "organizationName", "description", "barcodes",
    ],
    "properties": {
        "formatVersion": {"const": 1},
        "passTypeIdentifier": _NON_EMPTY,
        "serialNumber": _NON_EMPTY,
        "teamIdentifier": _NON_EMPTY,
        "organizationName": _NON_EMPTY,
        "description": _NON_EMPTY,
        "barcodes": {
            "type": "array",
            "minItems": 1,
            "items": {
                "type": "object",
                "required": ["message", "format"],
                "properties": {"message": _NON_EMPTY, "format": _NON_EMPTY},
            },
        },
    },
}

APPLE_PASS_STRICT_SCHEMA = {
    "allOf": [APPLE_PASS_SCHEMA],
    "type": "object",
    "required": ["backgroundColor", "foregroundColor", "labelColor"],
    "properties": {
        "passTypeIdentifier": {"type": "string", "pattern": r"^pass\.[A-Za-z0-9.-]+$"},
        "teamIdentifier": {"type": "string", "pattern": r"^[A-Z0-9]{10}$"},
        "backgroundColor": _RGB,
        "foregroundColor": _RGB,
        "labelColor": _RGB,
        "barcodes": {
            "type": "array",
            "items": {
                "type": "object",
                "required": ["messageEncoding"],
                "properties": {
                    "format": {"enum": [
                        "PKBarcodeFormatQR", "PKBarcodeFormatPDF417",
                        "PKBarcodeFormatAztec", "PKBarcodeFormatCode128",
                    ]},
                    "messageEncoding": {"const": "iso-8859-1"},
                },
            },
        },
        "storeCard": _PASS_STYLE_BLOCK,
        "generic": _PASS_STYLE_BLOCK,
    },
    "oneOf": [
        {"required": ["storeCard"], "not": {"required": ["generic"]}},
        {"required": ["generic"], "not": {"required": ["storeCard"]}},
    ],
}

# Native pass B: Google Wallet loyalty / generic object
GOOGLE_OBJECT_SCHEMA = {
    "type": "object",
    "required": ["id", "classId", "state", "barcode"],
    "properties": {
        "id": _NON_EMPTY,
        "classId": _NON_EMPTY,
        "state": _NON_EMPTY,
        "barcode": {
            "type": "object",
            "required": ["type", "value"],
            "properties": {"type": _NON_EMPTY, "value": _NON_EMPTY},
        },
    },
}

_TEXT_MODULE = {
    "type": "object",
    "required": ["id", "header", "body"],
    "properties": {"id": _NON_EMPTY, "header": _NON_EMPTY, "body": _NON_EMPTY},
}

GOOGLE_OBJECT_STRICT_SCHEMA = {
    "allOf": [GOOGLE_OBJECT_SCHEMA],
    "type": "object",
    "required": ["textModulesData"],
    "properties": {
        "id": {"type": "string", "pattern": r"^\d+\.[\w.-]+$"},
        "classId": {"type": "string", "pattern": r"^\d+\.[\w.-]+$"},
        "state": {"enum": ["ACTIVE", "COMPLETED", "EXPIRED", "INACTIVE"]},
        "barcode": {
            "type": "object",
            "properties": {"type": {"enum": ["QR_CODE", "PDF_417", "AZTEC", "CODE_128"]}},
        },
        "textModulesData": {"type": "array", "minItems": 3, "items": _TEXT_MODULE},
    },
    "anyOf": [
        {"required": ["loyaltyPoints"]},
        {"required": ["cardTitle", "header"]},
    ],
}

# Web pass
WEB_PASS_SCHEMA = {
    "type": "object",
    "required": ["id", "title", "business", "barcode"],
    "properties": {
        "id": _NON_EMPTY,
        "title": _NON_EMPTY,
        "business": {
            "type": "object",
            "required": ["name"],
            "properties": {"name": _NON_EMPTY},
        },
        "barcode": {
            "type": "object",
            "required": ["value"],
            "properties": {"value": _NON_EMPTY},
        },
        "actions": {
            "type": "array",
            "items": {"type": "object", "required": ["id", "label"]},
        },
    },
}


def contract_errors(instance: Any, schema: Dict[str, Any]) -> List[str]:
    """Return every contract violation as "path: message", empty when the instance conforms"""
    validator = jsonschema.Draft7Validator(schema)
    errors = []
    for error in sorted(validator.iter_errors(instance), key=lambda e: [str(p) for p in e.absolute_path]):
        path = ".".join(str(part) for part in error.absolute_path) or "<root>"
        errors.append(f"{path}: {error.message}")
    return errors


def check_contract(platform: str, instance: Any, schema: Dict[str, Any]) -> None:
    """Raise EncodingError when the descriptor breaks its contract"""
    errors = contract_errors(instance, schema)
    if errors:
        logger.error(f"❌ {platform} descriptor failed its contract: {errors}")
        raise EncodingError(platform, "; ".join(errors))
