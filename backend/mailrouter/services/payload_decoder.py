"""
Inbound body decoding.

The relay provider (SendGrid Inbound Parse) posts multipart/form-data by
default and JSON when configured to. Both are decoded into one flat mapping so
routing can read ``body["to"]`` and the forwarder can re-send the whole thing
as JSON.

Multipart conventions
---------------------
  text field        str
  repeated field    list of values, in the order received
  file part         {"filename": str, "content_type": str, "content": str}
                    where content is base64-encoded
"""

import base64
import json
import logging
from typing import Any

from starlette.datastructures import UploadFile
from starlette.exceptions import HTTPException
from starlette.formparsers import MultiPartException
from starlette.requests import Request

from mailrouter.errors import InvalidPayload

logger = logging.getLogger(__name__)

_FORM_MEDIA_TYPES = {"multipart/form-data", "application/x-www-form-urlencoded"}


def media_type(content_type: str | None) -> str:
    """Return the bare, lower-cased media type of a Content-Type header value."""
    if not content_type:
        return ""
    return content_type.split(";", 1)[0].strip().lower()


async def _encode_file(upload: UploadFile) -> dict:
    logger.info("Received file: %s", upload.filename)
    content = await upload.read()
    return {
        "filename": upload.filename,
        "content_type": upload.content_type or "application/octet-stream",
        "content": base64.b64encode(content).decode(),
    }


async def decode_form(request: Request) -> dict[str, Any]:
    """Decode a multipart or urlencoded body into a field mapping."""
    try:
        form = await request.form()
    except MultiPartException as exc:
        raise InvalidPayload(exc.message)
    except HTTPException as exc:
        # Starlette wraps parser errors once the request is bound to an app.
        raise InvalidPayload(exc.detail)
    body: dict[str, Any] = {}
    for key, value in form.multi_items():
        if isinstance(value, UploadFile):
            value = await _encode_file(value)
        if key not in body:
            body[key] = value
        elif isinstance(body[key], list):
            body[key].append(value)
        else:
            body[key] = [body[key], value]
    return body


def _reject_constant(name: str) -> Any:
    raise InvalidPayload(f"{name} is not valid JSON")


def decode_json(raw: bytes) -> dict[str, Any]:
    """
    Decode a JSON body that must be an object.

    An empty body decodes to {}.

    Raises:
        InvalidPayload: the body is not valid JSON (NaN and Infinity
            included), or not a JSON object.
    """
    if not raw.strip():
        return {}
    try:
        payload = json.loads(raw, parse_constant=_reject_constant)
    except ValueError as exc:
        raise InvalidPayload(f"malformed JSON ({exc})")
    if not isinstance(payload, dict):
        raise InvalidPayload(f"expected a JSON object, got {type(payload).__name__}")
    return payload


async def decode_body(request: Request) -> dict[str, Any]:
    """
    Decode the request body according to its Content-Type.

    Form encodings go through the multipart parser; everything else is read
    as JSON.
    """
    if media_type(request.headers.get("content-type")) in _FORM_MEDIA_TYPES:
        return await decode_form(request)
    return decode_json(await request.body())
