"""Load swarm and backlog specifications from YAML documents.

Keys may be written in camelCase or snake_case. Only structural defaults are
filled in here; everything else is validated by the record models.
"""

from __future__ import annotations

import logging
from pathlib import Path
from typing import Any, Dict, List, Mapping

import yaml
from pydantic import ValidationError

from ..sprints.schema import BacklogSpec
from .schema import SwarmSpec

LOGGER = logging.getLogger(__name__)


class SpecLoadError(ValueError):
    """Raised when a specification document is missing or malformed."""


def _read_mapping(path: Path) -> Dict[str, Any]:
    try:
        text = path.read_text(encoding="utf-8")
    except FileNotFoundError as error:
        raise SpecLoadError(f"Spec file not found: {path}") from error
    except OSError as error:
        raise SpecLoadError(f"Failed to read spec {path}: {error}") from error
    try:
        data = yaml.safe_load(text) or {}
    except yaml.YAMLError as error:
        raise SpecLoadError(f"Failed to parse spec {path}: {error}") from error
    if not isinstance(data, dict):
        raise SpecLoadError(f"Spec {path} must be a mapping at the top level.")
    return data


def _first(data: Mapping[str, Any], *keys: str, default: Any = None) -> Any:
    for key in keys:
        if key in data:
            return data[key]
    return default


def load_swarm_spec(path: Path | str) -> SwarmSpec:
    """Parse a swarm spec; each feature without an id gets ``f-<n>``."""
    spec_path = Path(path)
    data = _read_mapping(spec_path)

    raw_features = _first(data, "features", default=[]) or []
    if not isinstance(raw_features, list):
        raise SpecLoadError("'features' must be a list")
    features: List[Dict[str, Any]] = []
    for index, entry in enumerate(raw_features, start=1):
        if not isinstance(entry, dict):
            raise SpecLoadError(f"Feature #{index} must be a mapping")
        feature = dict(entry)
        if not feature.get("id"):
            feature["id"] = f"f-{index}"
        feature.setdefault("name", feature["id"])
        features.append(feature)
    if not features:
        raise SpecLoadError(f"Spec {spec_path} declares no features")

    payload = dict(data)
    payload["features"] = features
    tech_stack = _first(payload, "techStack", "tech_stack")
    if isinstance(tech_stack, str):
        payload.pop("techStack", None)
        payload["tech_stack"] = {"language": tech_stack}
    try:
        spec = SwarmSpec.model_validate(payload)
    except ValidationError as error:
        raise SpecLoadError(f"Invalid swarm spec {spec_path}: {error}") from error
    LOGGER.debug("Loaded swarm spec %s with %d feature(s)", spec.project_name, len(spec.features))
    return spec


def load_backlog_spec(path: Path | str) -> BacklogSpec:
    """Parse a sprint backlog; a relative output path resolves against the file."""
    spec_path = Path(path)
    data = _read_mapping(spec_path)

    output = _first(data, "outputPath", "output_path")
    if not output:
        raise SpecLoadError(f"Backlog {spec_path} has no outputPath")
    output_path = Path(str(output))
    if not output_path.is_absolute():
        output_path = (spec_path.parent / output_path).resolve()

    payload = {key: value for key, value in data.items() if key not in ("outputPath", "output_path")}
    payload["output_path"] = str(output_path)
    try:
        spec = BacklogSpec.model_validate(payload)
    except ValidationError as error:
        raise SpecLoadError(f"Invalid backlog {spec_path}: {error}") from error
    LOGGER.debug("Loaded backlog %s with %d sprint(s)", spec.project_name, len(spec.sprints))
    return spec


__all__ = ["SpecLoadError", "load_backlog_spec", "load_swarm_spec"]
