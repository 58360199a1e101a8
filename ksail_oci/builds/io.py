"""Build request file loading.

Build requests can be kept next to the manifests they package, as YAML or
JSON files. Keys may be snake_case or camelCase.
"""

import json
import os
from pathlib import Path

import yaml

from ksail_oci.types import BuildRequest

YAML_SUFFIXES = {".yaml", ".yml"}


def load_build_request(path: Path) -> BuildRequest:
    """Load a build request from a YAML or JSON file.

    Files ending in .yaml or .yml are read as YAML and anything else as
    JSON. An empty YAML document is an empty request. A relative source
    path is resolved against the request file's directory.

    Args:
        path: Path to the request file.

    Returns:
        BuildRequest (not yet validated).

    Raises:
        FileNotFoundError: If the file does not exist.
        yaml.YAMLError: If a YAML file cannot be parsed.
        json.JSONDecodeError: If a JSON file cannot be parsed.
        ValueError: If the document is not a mapping.
        pydantic.ValidationError: If the content does not match the schema.
    """
    text = path.read_text(encoding="utf-8")
    if path.suffix.lower() in YAML_SUFFIXES:
        data = yaml.safe_load(text)
        if data is None:
            data = {}
    else:
        data = json.loads(text)

    if not isinstance(data, dict):
        raise ValueError(
            f"Build request {path} must be a mapping, got {type(data).__name__}"
        )

    request = BuildRequest.model_validate(data)

    source = request.source_path.strip()
    if source and not os.path.isabs(source):
        request = request.model_copy(
            update={"source_path": str(path.parent / source)}
        )

    return request


__all__ = ["load_build_request"]
