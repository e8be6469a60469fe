"""Identifier helpers."""

from __future__ import annotations

import uuid

QUERY_ID_PREFIX = "qry"


def new_query_id() -> str:
    """Opaque id attached to each retrieval result."""
    return f"{QUERY_ID_PREFIX}_{uuid.uuid4().hex}"
