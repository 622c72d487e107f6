"""Loading sphere hierarchies and exporting reduced sphere sets."""

from __future__ import annotations

import json
import time
from pathlib import Path
from typing import Any, Dict, List, Mapping, Optional, Sequence, Union
from xml.etree import ElementTree as ET

import yaml
import yourdfpy
from loguru import logger

from .core import (
    DEFAULT_LINK_PREFIXES,
    DEFAULT_SPHERE_RADIUS,
    LinkSphereSet,
    Sphere,
    reduce_sphere_hierarchy,
)


class HierarchyLoadError(Exception):
    """Raised when a sphere hierarchy file cannot be read or has the wrong shape."""


def load_sphere_hierarchy(path: Union[str, Path]) -> Dict[str, Any]:
    """Load a raw ``link -> level -> subdivision -> {spheres}`` hierarchy from JSON or YAML.

    Key order from the file is preserved, which makes the finest-set tie-break
    reproducible for a given file.
    """
    path = Path(path)
    suffix = path.suffix.lower()
    try:
        text = path.read_text()
    except OSError as e:
        raise HierarchyLoadError(f"Cannot read sphere hierarchy {path}: {e}") from e

    try:
        if suffix == ".json":
            data = json.loads(text)
        elif suffix in (".yml", ".yaml"):
            data = yaml.safe_load(text)
        else:
            raise HierarchyLoadError(f"Unsupported sphere hierarchy format: {path.suffix!r}")
    except (json.JSONDecodeError, yaml.YAMLError) as e:
        raise HierarchyLoadError(f"Cannot parse sphere hierarchy {path}: {e}") from e

    if not isinstance(data, Mapping):
        raise HierarchyLoadError(
            f"Sphere hierarchy {path} must be a mapping at the top level, got {type(data).__name__}"
        )
    logger.debug(f"Loaded sphere hierarchy for {len(data)} links from {path}")
    return dict(data)


def link_sphere_sets_to_dict(
    link_sphere_sets: Sequence[LinkSphereSet], default_radius: float = DEFAULT_SPHERE_RADIUS
) -> Dict[str, Any]:
    """Build a bubblify-style ``collision_spheres`` document from reduced sphere sets."""
    collision_spheres: Dict[str, list] = {}
    for entry in link_sphere_sets:
        spheres = collision_spheres.setdefault(entry.link, [])
        for sphere in entry.parsed_spheres(default_radius):
            spheres.append(
                {"center": [float(c) for c in sphere.origin], "radius": float(sphere.radius)}
            )

    return {
        "collision_spheres": collision_spheres,
        "metadata": {
            "total_spheres": int(sum(len(s) for s in collision_spheres.values())),
            "links": list(collision_spheres.keys()),
            "export_timestamp": float(time.time()),
        },
    }


def link_sphere_sets_to_yaml(link_sphere_sets: Sequence[LinkSphereSet]) -> str:
    return yaml.dump(
        link_sphere_sets_to_dict(link_sphere_sets), default_flow_style=False, sort_keys=False
    )


def inject_spheres_into_urdf_xml(
    original_urdf_path: Optional[Path],
    urdf_obj: Optional[yourdfpy.URDF],
    link_sphere_sets: Sequence[LinkSphereSet],
    link_prefixes: Sequence[str] = DEFAULT_LINK_PREFIXES,
) -> str:
    """Replace every link's collision elements with the given spheres.

    Sphere sets are matched to URDF links by name, or by name with one of
    ``link_prefixes``; sets without a matching link are skipped.
    """
    if original_urdf_path is not None:
        root = ET.parse(original_urdf_path).getroot()
    elif urdf_obj is not None:
        root = ET.fromstring(urdf_obj.write_xml_string())
    else:
        raise ValueError("Either original_urdf_path or urdf_obj is required")

    link_elems = {e.get("name"): e for e in root.findall("link")}

    for link_elem in link_elems.values():
        for collision_elem in link_elem.findall("collision"):
            link_elem.remove(collision_elem)

    for entry in link_sphere_sets:
        names = [entry.link] + [prefix + entry.link for prefix in link_prefixes]
        link_elem = next((link_elems[n] for n in names if n in link_elems), None)
        if link_elem is None:
            logger.warning(f"No URDF link matches sphere set {entry.link!r}, skipping")
            continue

        for index, sphere in enumerate(entry.parsed_spheres()):
            coll = ET.SubElement(link_elem, "collision", {"name": f"sphere_{index}"})
            ET.SubElement(
                coll,
                "origin",
                {
                    "xyz": f"{sphere.origin[0]} {sphere.origin[1]} {sphere.origin[2]}",
                    "rpy": "0 0 0",
                },
            )
            geom = ET.SubElement(coll, "geometry")
            ET.SubElement(geom, "sphere", {"radius": f"{sphere.radius}"})

    ET.indent(root, space="  ")

    xml_content = ET.tostring(root, encoding="unicode")
    return '<?xml version="1.0" encoding="utf-8"?>\n' + xml_content


def sphere_sets_from_collision_yaml(data: Mapping[str, Any]) -> List[LinkSphereSet]:
    """Read link sphere sets back from a bubblify ``collision_spheres`` document."""
    collision_spheres = data.get("collision_spheres")
    if not isinstance(collision_spheres, Mapping):
        return []
    return [
        LinkSphereSet(
            link=str(link),
            spheres=[Sphere.from_raw(s) for s in spheres]
            if isinstance(spheres, (list, tuple))
            else [],
        )
        for link, spheres in collision_spheres.items()
    ]


def load_link_sphere_sets(path: Union[str, Path]) -> List[LinkSphereSet]:
    """Load sphere sets from a raw hierarchy or from a ``collision_spheres`` export."""
    data = load_sphere_hierarchy(path)
    if "collision_spheres" in data:
        return sphere_sets_from_collision_yaml(data)
    return reduce_sphere_hierarchy(data)
