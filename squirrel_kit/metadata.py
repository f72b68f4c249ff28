from __future__ import annotations

from pathlib import Path
from typing import Dict, Sequence, Union

from .errors import ConfigurationError
from .types import ClassNameTable


def parse_class_names(value: Union[str, Sequence[str]]) -> ClassNameTable:
    """
    Build the class-name table from a comma-delimited string ("squirrel,bird")
    or a sequence of names. Position in the table is the class id.
    """

    if isinstance(value, str):
        parts = value.split(",")
    else:
        parts = list(value)

    names = []
    for idx, raw in enumerate(parts):
        if not isinstance(raw, str):
            raise ConfigurationError(f"class name at index {idx} must be a string, got {raw!r}")
        name = raw.strip()
        if not name:
            raise ConfigurationError(f"class name at index {idx} is empty")
        names.append(name)

    if not names:
        raise ConfigurationError("class name table must not be empty")
    return tuple(names)


def load_class_names(metadata_path: Union[str, Path]) -> ClassNameTable:
    """
    Load class names from a lightweight `metadata.yaml` file:

        names:
          0: squirrel
          1: bird

    Ids must run 0..N-1 without gaps. Parsed by hand so no YAML dependency is needed.
    """

    names: Dict[int, str] = {}
    in_names = False

    with open(metadata_path, "r", encoding="utf-8") as f:
        for raw in f:
            line = raw.strip()
            if not line or line.startswith("#"):
                continue
            if line == "names:":
                in_names = True
                continue
            if not in_names:
                continue

            if ":" not in line:
                continue
            left, right = line.split(":", 1)
            left = left.strip()
            right = right.strip().strip("'").strip('"')
            if not left.isdigit():
                continue
            names[int(left)] = right

    if not names:
        raise ConfigurationError(f"No class names found in {metadata_path}")
    missing = sorted(set(range(len(names))) - set(names))
    if missing:
        raise ConfigurationError(f"Class ids in {metadata_path} must be contiguous from 0; missing {missing}")
    return parse_class_names([names[i] for i in range(len(names))])
