"""Loading of the bundled YAML rule tables."""

from __future__ import annotations

from pathlib import Path
from typing import Any, Optional, Union

import yaml

RULES_DIR = Path(__file__).resolve().parent / "rules"


def load_yaml(name: str, path: Optional[Union[str, Path]] = None, expect: type = dict) -> Any:
    """Load a rule file and check its top-level type.

    Parameters
    ----------
    name :
        Bundled file name under ``rules/`` (used when *path* is ``None``).
    path :
        Explicit path overriding the bundled file.
    expect :
        Required type of the parsed document.

    Raises
    ------
    ValueError
        If the YAML is invalid or the document has the wrong type.
    FileNotFoundError
        If the file does not exist.
    """
    path = Path(path) if path is not None else RULES_DIR / name
    try:
        with open(path, encoding="utf-8") as fh:
            data = yaml.safe_load(fh)
    except yaml.YAMLError as exc:
        raise ValueError(f"Invalid YAML in {path}: {exc}") from exc

    if not isinstance(data, expect):
        raise ValueError(
            f"Expected a {expect.__name__} in {path}, got {type(data).__name__}"
        )
    return data


def require_keys(entry: Any, required: set, where: str) -> None:
    """Raise ``ValueError`` if mapping *entry* lacks any *required* key."""
    if not isinstance(entry, dict):
        raise ValueError(f"{where}: expected a mapping, got {type(entry).__name__}")
    missing = required - set(entry.keys())
    if missing:
        raise ValueError(f"{where} missing required keys: {sorted(missing)}")
