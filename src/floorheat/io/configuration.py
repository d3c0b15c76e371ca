from __future__ import annotations

import json
import logging
from pathlib import Path
from typing import Any, Dict

from floorheat.model import (
    BubbleFoil,
    FoilContact,
    InvalidConfiguration,
    LayerMaterial,
    LayerRole,
    LoopLayout,
    MountingMat,
    NoUnderlay,
    SolveRequest,
    Underlay,
    UnderlayKind,
)
from floorheat.model import materials as material_catalog

logger = logging.getLogger(__name__)

FORMAT_VERSION = 1

_FLOAT_FIELDS = (
    "air_temp_c",
    "supply_temp_c",
    "return_temp_c",
    "pipe_spacing_m",
    "pipe_outer_diameter_m",
    "screed_thickness_m",
    "top_htc_w_per_m2k",
    "below_insulation_temp_c",
    "air_velocity_m_per_s",
    "cut_fraction",
    "area_m2",
    "loop_length_m",
    "flow_rate_l_per_min",
)
_INT_FIELDS = ("pipe_count", "nx")
_BOOL_FIELDS = ("use_fixed_area", "auto_return")
_LAYER_FIELDS = {
    "covering": LayerRole.COVERING,
    "screed": LayerRole.SCREED,
    "insulation": LayerRole.INSULATION,
}


def save_request(request: SolveRequest, path: Path) -> None:
    """Persist ``request`` to ``path`` in JSON format."""
    payload = {"version": FORMAT_VERSION, "request": request_to_payload(request)}
    path.write_text(json.dumps(payload, indent=2))
    logger.info(f"Saved floor configuration to {path}")


def load_request(path: Path) -> SolveRequest:
    """
    Load a previously saved parameter set from ``path``.

    Missing fields keep their defaults; presets given only by identifier are
    resolved against the material catalog.

    Raises:
        InvalidConfiguration: The file is not valid JSON, the payload is
            malformed or it names an unknown preset.
    """
    try:
        data = json.loads(path.read_text())
    except json.JSONDecodeError as exc:
        raise InvalidConfiguration(f"{path} is not valid JSON: {exc}") from exc
    if not isinstance(data, dict):
        raise InvalidConfiguration(f"Configuration root in {path} must be an object.")
    request_payload = data.get("request", data)
    request = request_from_payload(request_payload)
    logger.info(f"Loaded floor configuration from {path}")
    return request


# ---------------------------------------------------------------------------
# Serialisation helpers


def request_to_payload(request: SolveRequest) -> Dict[str, Any]:
    payload: Dict[str, Any] = {name: getattr(request, name) for name in _FLOAT_FIELDS}
    payload.update({name: getattr(request, name) for name in _INT_FIELDS})
    payload.update({name: getattr(request, name) for name in _BOOL_FIELDS})
    payload["layout"] = request.layout.value
    for name in _LAYER_FIELDS:
        payload[name] = _material_to_payload(getattr(request, name))
    payload["underlay"] = _underlay_to_payload(request.underlay)
    return payload


def request_from_payload(payload: Any) -> SolveRequest:
    if not isinstance(payload, dict):
        raise InvalidConfiguration(f"Request payload must be an object, got {type(payload).__name__}.")
    known = set(_FLOAT_FIELDS) | set(_INT_FIELDS) | set(_BOOL_FIELDS) | set(_LAYER_FIELDS)
    known |= {"layout", "underlay"}
    unknown = sorted(set(payload) - known)
    if unknown:
        raise InvalidConfiguration(f"Unknown configuration fields: {', '.join(unknown)}.")

    values: Dict[str, Any] = {}
    try:
        for name in _FLOAT_FIELDS:
            if name in payload:
                values[name] = float(payload[name])
        for name in _INT_FIELDS:
            if name in payload:
                values[name] = _strict_int(payload[name])
        for name in _BOOL_FIELDS:
            if name in payload:
                values[name] = _strict_bool(payload[name])
        if "layout" in payload:
            values["layout"] = LoopLayout(payload["layout"])
    except (TypeError, ValueError) as exc:
        raise InvalidConfiguration(f"Invalid request payload: {exc}") from exc

    for name, role in _LAYER_FIELDS.items():
        if name in payload:
            values[name] = _material_from_payload(role, payload[name])
    if "underlay" in payload:
        values["underlay"] = _underlay_from_payload(payload["underlay"])

    request = SolveRequest(**values)
    request.validate()
    return request


def _material_to_payload(material: LayerMaterial) -> Dict[str, Any]:
    payload: Dict[str, Any] = {
        "identifier": material.identifier,
        "name": material.name,
        "thickness_m": material.thickness_m,
        "conductivity_w_per_mk": material.conductivity_w_per_mk,
    }
    if material.notes:
        payload["notes"] = material.notes
    return payload


def _material_from_payload(role: LayerRole, payload: Any) -> LayerMaterial:
    if isinstance(payload, str):
        return _catalog_material(role, payload)
    if not isinstance(payload, dict):
        raise InvalidConfiguration(f"Invalid {role.value} entry: {payload!r}")
    identifier = str(payload.get("identifier", ""))
    if "conductivity_w_per_mk" not in payload:
        if not identifier:
            raise InvalidConfiguration(f"{role.value} entry needs an identifier or properties: {payload}")
        return _catalog_material(role, identifier)
    catalog = material_catalog.find_material(role, identifier)
    try:
        return LayerMaterial(
            identifier=identifier or "custom",
            name=str(payload.get("name", catalog.name if catalog else identifier or "Custom")),
            conductivity_w_per_mk=float(payload["conductivity_w_per_mk"]),
            thickness_m=float(payload.get("thickness_m", catalog.thickness_m if catalog else 0.0)),
            notes=payload.get("notes"),
        )
    except (TypeError, ValueError) as exc:
        raise InvalidConfiguration(f"Invalid {role.value} entry: {payload}") from exc


def _catalog_material(role: LayerRole, identifier: str) -> LayerMaterial:
    material = material_catalog.find_material(role, identifier)
    if material is None:
        raise InvalidConfiguration(f"Unknown {role.value} preset '{identifier}'.")
    return material


def _underlay_to_payload(underlay: Underlay) -> Dict[str, Any]:
    payload: Dict[str, Any] = {
        "identifier": underlay.identifier,
        "name": underlay.name,
        "kind": underlay.kind.value,
    }
    if isinstance(underlay, BubbleFoil):
        payload["gap_thickness_m"] = underlay.gap_thickness_m
        payload["emissivity"] = underlay.emissivity
    elif isinstance(underlay, MountingMat):
        payload["contact_fraction"] = underlay.contact_fraction
    return payload


def _underlay_from_payload(payload: Any) -> Underlay:
    if isinstance(payload, str):
        return _catalog_underlay(payload)
    if not isinstance(payload, dict):
        raise InvalidConfiguration(f"Invalid underlay entry: {payload!r}")
    identifier = payload.get("identifier")
    kind_value = payload.get("kind")
    if kind_value is None:
        if not identifier:
            raise InvalidConfiguration(f"Underlay entry needs an identifier or a kind: {payload}")
        return _catalog_underlay(str(identifier))

    try:
        kind = UnderlayKind(kind_value)
        extras: Dict[str, Any] = {}
        if identifier:
            extras["identifier"] = str(identifier)
        if payload.get("name"):
            extras["name"] = str(payload["name"])
        if kind is UnderlayKind.NONE:
            return NoUnderlay(**extras)
        if kind is UnderlayKind.FOIL_CONTACT:
            return FoilContact(**extras)
        if kind is UnderlayKind.BUBBLE_FOIL:
            return BubbleFoil(
                gap_thickness_m=float(payload.get("gap_thickness_m", 0.005)),
                emissivity=float(payload.get("emissivity", 0.05)),
                **extras,
            )
        return MountingMat(contact_fraction=float(payload.get("contact_fraction", 0.5)), **extras)
    except (TypeError, ValueError) as exc:
        raise InvalidConfiguration(f"Invalid underlay entry: {payload}") from exc


def _catalog_underlay(identifier: str) -> Underlay:
    underlay = material_catalog.find_underlay(identifier)
    if underlay is None:
        raise InvalidConfiguration(f"Unknown underlay preset '{identifier}'.")
    return underlay


def _strict_int(value: Any) -> int:
    if isinstance(value, bool):
        raise TypeError(f"expected an integer, got {value!r}")
    if isinstance(value, float):
        if not value.is_integer():
            raise ValueError(f"expected an integer, got {value!r}")
        return int(value)
    return int(value)


def _strict_bool(value: Any) -> bool:
    if isinstance(value, bool):
        return value
    raise TypeError(f"expected true or false, got {value!r}")
