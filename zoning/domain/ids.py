from __future__ import annotations

import importlib

ulid_module = importlib.import_module("ulid")


def new_record_id() -> str:
    return f"rec_{ulid_module.new().str}"
