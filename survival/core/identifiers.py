"""Utilities for generating identifiers used across the service."""

from __future__ import annotations

import uuid


def new_run_id() -> str:
    return f"ar_{uuid.uuid4().hex}"


def new_file_id() -> str:
    return f"af_{uuid.uuid4().hex}"
