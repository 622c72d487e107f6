"""Core data structures, sphere hierarchy reduction and link colors for collisionviz."""

from __future__ import annotations

import colorsys
import dataclasses
import math
from typing import Any, List, Mapping, Optional, Sequence, Tuple

import numpy as np
from loguru import logger

Color = Tuple[float, float, float]

# Separator between the link name and the dataset suffix in hierarchy keys
LINK_KEY_SEPARATOR = "::"

DEFAULT_SPHERE_RADIUS = 0.01
DEFAULT_SPHERE_OPACITY = 0.45
DEFAULT_SPHERE_SEGMENTS = (16, 12)  # longitude, latitude
# Scene node names tried for a link, in addition to the bare link name
DEFAULT_LINK_PREFIXES = ("link_", "body_")
FALLBACK_LINK_COLOR: Color = (1.0, 0x44 / 255.0, 0x44 / 255.0)

FNV_OFFSET_BASIS = 0x811C9DC5
FNV_PRIME = 0x01000193
GOLDEN_RATIO_CONJUGATE = 0.618033988749895
_SATURATION_SEED = 0.1274123
_LIGHTNESS_SEED = 0.2718281


def _as_float(value: Any, default: float) -> float:
    """Return ``value`` as a finite float, or ``default`` if it is not a number."""
    if isinstance(value, bool) or not isinstance(value, (int, float, np.number)):
        return default
    value = float(value)
    if not math.isfinite(value):
        return default
    return value


@dataclasses.dataclass(frozen=True)
class Sphere:
    """A collision sphere in the local frame of its link."""

    origin: Tuple[float, float, float] = (0.0, 0.0, 0.0)
    radius: float = DEFAULT_SPHERE_RADIUS

    @classmethod
    def from_raw(cls, raw: Any, default_radius: float = DEFAULT_SPHERE_RADIUS) -> "Sphere":
        """Build a sphere from a raw dataset entry, substituting defaults for bad fields.

        Accepts ``{"origin": [x, y, z], "radius": r}``. The ``center`` key used by
        bubblify YAML exports is accepted in place of ``origin``.
        """
        if isinstance(raw, Sphere):
            return raw
        if not isinstance(raw, Mapping):
            return cls(radius=default_radius)

        origin = raw.get("origin", raw.get("center"))
        if not isinstance(origin, (list, tuple, np.ndarray)):
            origin = ()
        xyz = tuple(
            _as_float(origin[i], 0.0) if i < len(origin) else 0.0 for i in range(3)
        )
        radius = max(0.0, _as_float(raw.get("radius"), default_radius))
        return cls(origin=xyz, radius=radius)


@dataclasses.dataclass
class LinkSphereSet:
    """The finest sphere set found for one link."""

    link: str
    spheres: List[Any] = dataclasses.field(default_factory=list)

    def parsed_spheres(self, default_radius: float = DEFAULT_SPHERE_RADIUS) -> List[Sphere]:
        """Return the spheres of this set as :class:`Sphere` objects."""
        return [Sphere.from_raw(s, default_radius) for s in self.spheres]


@dataclasses.dataclass
class SphereMaterial:
    """Render state shared by every sphere primitive of one link.

    The overlay hands out one instance per link, so mutating it and pushing it to
    the scene backend recolors every sibling sphere at once.
    """

    color: Color
    opacity: float = DEFAULT_SPHERE_OPACITY
    depth_test: bool = True
    depth_write: bool = False
    cast_shadow: bool = False
    receive_shadow: bool = False
    pickable: bool = False

    @property
    def color_uint8(self) -> Tuple[int, int, int]:
        return rgb_to_uint8(self.color)


@dataclasses.dataclass
class OverlayConfig:
    """Tunable defaults for the collision sphere overlay."""

    opacity: float = DEFAULT_SPHERE_OPACITY
    sphere_segments: Tuple[int, int] = DEFAULT_SPHERE_SEGMENTS
    default_radius: float = DEFAULT_SPHERE_RADIUS
    link_prefixes: Tuple[str, ...] = DEFAULT_LINK_PREFIXES
    fallback_color: Color = FALLBACK_LINK_COLOR


def split_link_key(key: Any) -> str:
    """Return the link name part of a ``"<link>::<suffix>"`` hierarchy key."""
    return str(key).split(LINK_KEY_SEPARATOR, 1)[0]


def _finest_spheres(levels: Any) -> List[Any]:
    """Pick the longest ``spheres`` list across every level and subdivision.

    Only a strictly longer list replaces the current best, so the first maximal
    list in iteration order wins ties.
    """
    best: List[Any] = []
    best_count = -1
    if not isinstance(levels, Mapping):
        return best

    for level in levels.values():
        if not isinstance(level, Mapping):
            continue
        for subdivision in level.values():
            if not isinstance(subdivision, Mapping):
                continue
            spheres = subdivision.get("spheres")
            if not isinstance(spheres, (list, tuple)):
                continue
            if len(spheres) > best_count:
                best_count = len(spheres)
                best = spheres
    return list(best) if isinstance(best, tuple) else best


def reduce_sphere_hierarchy(raw: Mapping[str, Any]) -> List[LinkSphereSet]:
    """Reduce a multi-resolution sphere hierarchy to one finest sphere set per link.

    Args:
        raw: Mapping of ``"<link>::<suffix>"`` keys to ``level -> subdivision ->
            {"spheres": [...]}`` mappings.

    Returns:
        One :class:`LinkSphereSet` per top-level key, in input order. Links with no
        usable ``spheres`` list get an empty set rather than being dropped.
    """
    if not isinstance(raw, Mapping):
        logger.warning(f"Sphere hierarchy is not a mapping ({type(raw).__name__}), nothing to reduce")
        return []

    result = []
    for link_key, levels in raw.items():
        spheres = _finest_spheres(levels)
        if not spheres:
            logger.debug(f"No spheres found for hierarchy key {link_key!r}")
        result.append(LinkSphereSet(link=split_link_key(link_key), spheres=spheres))
    return result


def _utf16_code_units(text: str) -> np.ndarray:
    return np.frombuffer(text.encode("utf-16-le", "surrogatepass"), dtype="<u2")


def fnv1a_32(text: str) -> int:
    """32-bit FNV-1a hash over the UTF-16 code units of ``text``."""
    value = FNV_OFFSET_BASIS
    for unit in _utf16_code_units(text):
        value ^= int(unit)
        value = (value * FNV_PRIME) & 0xFFFFFFFF
    return value


def _fract(x: float) -> float:
    return x - math.floor(x)


def color_for_link(
    link_name: Optional[str], fallback: Color = FALLBACK_LINK_COLOR
) -> Color:
    """Deterministic, well spread RGB color (floats in [0, 1]) for a link name."""
    if not link_name:
        return fallback

    value = fnv1a_32(link_name)
    hue = _fract(value * GOLDEN_RATIO_CONJUGATE)
    saturation = 0.5 + _fract(value * _SATURATION_SEED) * 0.35  # 0.5 - 0.85
    lightness = 0.42 + _fract(value * _LIGHTNESS_SEED) * 0.16  # 0.42 - 0.58
    return colorsys.hls_to_rgb(hue, lightness, saturation)


def rgb_to_uint8(color: Sequence[float]) -> Tuple[int, int, int]:
    """Convert an RGB float triple in [0, 1] to 0-255 integers."""
    rgb = np.clip(np.asarray(color[:3], dtype=np.float64), 0.0, 1.0)
    return tuple(int(c) for c in np.round(rgb * 255.0))
