"""
Sample identifiers and provisioning.

Identifiers look like GEN-SOIL-2024-001: project code, the first four
letters of the sample type, the collection year and a sequence number that
is scoped to that prefix. The next sequence number is the highest one
already stored plus one. Nothing is kept in memory, so the "read max, then
insert" cycle can race; the unique index on sample_id catches it and
provision_sample retries a bounded number of times.
"""

import os
import re
from datetime import datetime, timezone
from typing import Any, Dict, Optional

from pydantic import ValidationError as PydanticValidationError

import database
from errors import DuplicateIdentifierError, DuplicateRecordError, ValidationError
from labels import encode_label, to_data_url
from schemas import Sample

COLLECTION = "samples"
ID_FIELD = "sample_id"
SEQ_FIELD = "seq"
DEFAULT_PROJECT_CODE = "GEN"
MAX_ATTEMPTS = int(os.getenv("SAMPLE_ID_MAX_ATTEMPTS", "3"))

# Assigned by the server, never taken from the payload
SERVER_FIELDS = ("_id", ID_FIELD, SEQ_FIELD, "qr_code", "created_at", "updated_at")


def build_prefix(project_code: str, sample_type: str, year: int) -> str:
    return f"{project_code.upper()}-{sample_type[:4].upper()}-{year}"


def next_sequence(prefix: str) -> int:
    pattern = "^" + re.escape(prefix) + r"-\d{3,}$"

    latest = database.find_max_matching(COLLECTION, ID_FIELD, pattern, SEQ_FIELD)
    if latest is None:
        return 1
    try:
        last = int(latest.rsplit("-", 1)[1])
    except (IndexError, ValueError):
        last = 0
    return last + 1


def generate_identifier(project_code: str, sample_type: str, current_year: int) -> str:
    """Compute the next free identifier for the given project, type and year.

    Read-only: the identifier is not reserved until it is inserted.
    """
    prefix = build_prefix(project_code, sample_type, current_year)
    return f"{prefix}-{next_sequence(prefix):03d}"


def _resolve_project_code(payload: Dict[str, Any]) -> str:
    code = payload.get("project_code") or payload.get("projectCode")
    if not code or not str(code).strip():
        return DEFAULT_PROJECT_CODE
    return str(code).strip().upper()


def provision_sample(
    payload: Dict[str, Any],
    now: Optional[datetime] = None,
    max_attempts: Optional[int] = None,
) -> dict:
    """Validate a sample payload, assign its identifier and QR label, and store it.

    Args:
        payload: Raw sample fields; `type` is required, everything else is optional
        now: Creation time, used for the year segment (defaults to UTC now)
        max_attempts: How many generate -> insert cycles to try on id conflicts

    Returns:
        dict: The stored sample, including sample_id, qr_code and created_at

    Raises:
        ValidationError: missing or unknown sample type, or invalid fields
        DuplicateIdentifierError: every attempt lost the identifier race
        DuplicateRecordError: a unique index other than sample_id rejected the record
        EncodingError: the QR label could not be generated
        StoreError: database failure
    """
    if not payload.get("type"):
        raise ValidationError("sample type required")

    fields = {key: value for key, value in payload.items() if key not in SERVER_FIELDS}
    fields.pop("projectCode", None)
    fields["project_code"] = _resolve_project_code(payload)

    try:
        sample = Sample.model_validate(fields)
    except PydanticValidationError as e:
        raise ValidationError(
            f"Invalid sample: {e.errors(include_url=False, include_context=False)}",
            context={"errors": e.errors(include_url=False, include_context=False)},
        ) from e

    record = sample.model_dump(mode="json", exclude_none=True)
    prefix = build_prefix(record["project_code"], record["type"], (now or datetime.now(timezone.utc)).year)
    attempts = max(1, MAX_ATTEMPTS if max_attempts is None else max_attempts)

    sample_id = None
    for _ in range(attempts):
        seq = next_sequence(prefix)
        sample_id = f"{prefix}-{seq:03d}"
        record[ID_FIELD] = sample_id
        record[SEQ_FIELD] = seq
        record["qr_code"] = to_data_url(encode_label(sample_id))
        try:
            return database.insert_unique(COLLECTION, record)
        except DuplicateRecordError as e:
            # Unknown key pattern: assume the sample id collided
            key_fields = e.context.get("key_fields")
            if key_fields is not None and ID_FIELD not in key_fields:
                raise

    raise DuplicateIdentifierError(
        f"Sample ID {sample_id} was taken by a concurrent request, please retry",
        context={ID_FIELD: sample_id, "attempts": attempts},
    )
