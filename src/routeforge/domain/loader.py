from __future__ import annotations

from pathlib import Path

import yaml

from routeforge.domain.models import IdlPackage


def load_idl_package(path: Path) -> IdlPackage:
    """
    Load an already-parsed IDL manifest (JSON or YAML; YAML is a superset).
    Raises pydantic.ValidationError on malformed descriptors.
    """
    text = path.read_text(encoding="utf-8")
    data = yaml.safe_load(text) or {}
    return IdlPackage.model_validate(data)
