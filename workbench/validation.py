"""JSON Schema validation for service inputs.

Schemas are plain dicts (draft 7) checked with the ``jsonschema`` library.
"""

from __future__ import annotations

import logging
from typing import Any, Dict, List

from jsonschema import Draft7Validator

from workbench.errors import bad_request

LOGGER = logging.getLogger("workbench.validation")

ACCOUNT_ID_PATTERN = "^[0-9]{12}$"
REGION_PATTERN = "^[a-z]{2}(-gov)?-[a-z]+-[0-9]{1}$"
# Free text may not carry markup
SAFE_TEXT_PATTERN = "^([^<>{}]*)$"
NAME_PATTERN = "^[A-Za-z0-9 .\\-_]+$"
KMS_ARN_PATTERN = "^arn:aws[a-zA-Z-]*:kms:[a-z0-9-]+:[0-9]{12}:key/[A-Za-z0-9-]+$"
BUCKET_NAME_PATTERN = "^[a-zA-Z0-9][a-zA-Z0-9._-]{2,62}$"
STUDY_ID_PATTERN = "^[A-Za-z0-9\\-_.]+$"


REGISTER_ACCOUNT_SCHEMA: Dict[str, Any] = {
    "$schema": "http://json-schema.org/draft-07/schema#",
    "type": "object",
    "additionalProperties": False,
    "properties": {
        "id": {"type": "string", "pattern": ACCOUNT_ID_PATTERN},
        "name": {"type": "string", "minLength": 1, "maxLength": 300, "pattern": NAME_PATTERN},
        "main_region": {"type": "string", "pattern": REGION_PATTERN},
        "type": {"type": "string", "enum": ["managed", "unmanaged"]},
        "description": {"type": "string", "maxLength": 3000, "pattern": SAFE_TEXT_PATTERN},
        "contact_info": {"type": "string", "maxLength": 2048, "pattern": SAFE_TEXT_PATTERN},
    },
    "required": ["id", "name", "main_region"],
}

UPDATE_ACCOUNT_SCHEMA: Dict[str, Any] = {
    "$schema": "http://json-schema.org/draft-07/schema#",
    "type": "object",
    "additionalProperties": False,
    "properties": {
        "id": {"type": "string", "pattern": ACCOUNT_ID_PATTERN},
        "rev": {"type": "integer", "minimum": 0},
        "name": {"type": "string", "minLength": 1, "maxLength": 300, "pattern": NAME_PATTERN},
        "description": {"type": "string", "maxLength": 3000, "pattern": SAFE_TEXT_PATTERN},
        "contact_info": {"type": "string", "maxLength": 2048, "pattern": SAFE_TEXT_PATTERN},
    },
    "required": ["id", "rev"],
}

REGISTER_BUCKET_SCHEMA: Dict[str, Any] = {
    "$schema": "http://json-schema.org/draft-07/schema#",
    "type": "object",
    "additionalProperties": False,
    "properties": {
        "name": {"type": "string", "maxLength": 63, "pattern": BUCKET_NAME_PATTERN},
        "region": {"type": "string", "pattern": REGION_PATTERN},
        "aws_partition": {"type": "string", "enum": ["aws", "aws-us-gov", "aws-cn"]},
        "access": {"type": "string", "enum": ["roles"]},
        "sse": {"type": "string", "enum": ["kms", "s3"]},
        "kms_arn": {"type": "string", "minLength": 1, "maxLength": 2048, "pattern": KMS_ARN_PATTERN},
    },
    "required": ["name", "region", "aws_partition", "access", "sse"],
    "if": {"properties": {"sse": {"const": "kms"}}},
    "then": {"required": ["kms_arn"]},
}

REGISTER_STUDY_SCHEMA: Dict[str, Any] = {
    "$schema": "http://json-schema.org/draft-07/schema#",
    "type": "object",
    "additionalProperties": False,
    "properties": {
        "id": {"type": "string", "minLength": 1, "maxLength": 100, "pattern": STUDY_ID_PATTERN},
        "name": {"type": "string", "maxLength": 2048, "pattern": SAFE_TEXT_PATTERN},
        "description": {"type": "string", "maxLength": 8192, "pattern": SAFE_TEXT_PATTERN},
        "folder": {"type": "string", "minLength": 1, "maxLength": 1000},
        "kms_arn": {"type": "string", "minLength": 1, "maxLength": 2048, "pattern": KMS_ARN_PATTERN},
        "kms_scope": {"type": "string", "enum": ["bucket", "study", "none"]},
        "access_type": {"type": "string", "enum": ["readonly", "readwrite"]},
        "admin_users": {"type": "array", "minItems": 1, "items": {"type": "string", "minLength": 1}},
        "category": {"type": "string", "enum": ["Organization", "My Studies"]},
        "project_id": {"type": "string", "maxLength": 100},
    },
    "required": ["id", "folder", "kms_scope", "access_type", "admin_users", "category"],
    "if": {"properties": {"kms_scope": {"const": "study"}}},
    "then": {"required": ["kms_arn"]},
}

ATTEMPT_REACH_SCHEMA: Dict[str, Any] = {
    "$schema": "http://json-schema.org/draft-07/schema#",
    "type": "object",
    "additionalProperties": False,
    "properties": {
        "id": {
            "type": "string",
            "minLength": 1,
            "maxLength": 100,
            "anyOf": [{"pattern": STUDY_ID_PATTERN}, {"const": "*"}],
        },
        "type": {"type": "string", "enum": ["ds_account", "study"]},
        "status": {"type": "string", "enum": ["pending", "error", "reachable"]},
    },
    "required": ["id"],
}

OBTAIN_LOCK_SCHEMA: Dict[str, Any] = {
    "$schema": "http://json-schema.org/draft-07/schema#",
    "type": "object",
    "additionalProperties": False,
    "properties": {
        "id": {"type": "string", "minLength": 1, "maxLength": 512},
        "expires_in": {"type": "integer", "minimum": 1},
    },
    "required": ["id", "expires_in"],
}


def collect_errors(data: Any, schema: Dict[str, Any]) -> List[Dict[str, Any]]:
    """Return every schema violation for ``data`` as a plain dict."""
    validator = Draft7Validator(schema)
    errors = []
    for error in sorted(validator.iter_errors(data), key=lambda e: list(e.path)):
        errors.append({
            "path": "/".join(str(part) for part in error.path),
            "message": error.message,
        })
    return errors


def ensure_valid(data: Any, schema: Dict[str, Any]) -> None:
    """Raise a safe ``bad_request`` if ``data`` does not satisfy ``schema``.

    Args:
        data: Input to validate
        schema: JSON Schema dict

    Raises:
        ServiceError: with the list of violations under ``validation_errors``
    """
    errors = collect_errors(data, schema)
    if errors:
        LOGGER.debug("Validation failed: %s", errors)
        raise bad_request(
            "Input has validation errors",
            safe=True,
            payload={"validation_errors": errors},
        )
