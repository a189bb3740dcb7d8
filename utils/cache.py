"""Conditional-request helpers for JSON responses.

``ETag``/``If-None-Match`` decides 304 answers. ``Last-Modified`` is sent
for information only: a list can change by losing rows, which a date
check cannot see, so ``If-Modified-Since`` never produces a 304.
"""

from __future__ import annotations

import hashlib
import json
from datetime import datetime, timezone
from email.utils import format_datetime
from typing import Any, Iterable, Sequence

from flask import Response, jsonify, request

EPOCH = datetime(1970, 1, 1, tzinfo=timezone.utc)


def latest_timestamp(values: Iterable[datetime | None]) -> datetime:
    """Newest non-empty timestamp of ``values``, or the epoch."""
    stamps = [v for v in values if v is not None]
    return max(stamps) if stamps else EPOCH


def prepare_cache(
    data: Sequence[Any], last_modified: datetime
) -> Response | tuple[str, str]:
    """Check ``If-None-Match`` and compute ``ETag``/``Last-Modified``.

    Returns a 304 ``Response`` when the client copy is current, otherwise the
    ``(etag, last_modified_str)`` pair to put on the full response.
    """
    if last_modified.tzinfo is None:
        last_modified = last_modified.replace(tzinfo=timezone.utc)
    last_modified = last_modified.replace(microsecond=0)

    etag_source = json.dumps(
        list(data), ensure_ascii=False, sort_keys=True, default=str
    ).encode("utf-8")
    etag = hashlib.sha256(etag_source).hexdigest()
    last_modified_str = format_datetime(last_modified, usegmt=True)

    if request.headers.get("If-None-Match") == etag:
        not_modified = Response(status=304)
        not_modified.headers["ETag"] = etag
        not_modified.headers["Last-Modified"] = last_modified_str
        return not_modified

    return etag, last_modified_str


def cached_json(data: list, last_modified: datetime) -> Response:
    """``jsonify(data)`` answering conditional requests with 304."""
    cache = prepare_cache(data, last_modified)
    if isinstance(cache, Response):
        return cache
    etag, last_modified_str = cache
    resp = jsonify(data)
    resp.headers["ETag"] = etag
    resp.headers["Last-Modified"] = last_modified_str
    resp.headers["Cache-Control"] = "private, no-cache"
    return resp
