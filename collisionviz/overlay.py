"""Collision sphere overlay: attaches per-link sphere primitives to a model's scene tree."""

from __future__ import annotations

import dataclasses
import itertools
from typing import Any, Dict, List, Mapping, Optional, Sequence, Tuple

from loguru import logger

from .core import (
    Color,
    LinkSphereSet,
    OverlayConfig,
    Sphere,
    SphereMaterial,
    color_for_link,
)
from .scene import SceneBackend, SceneNode


@dataclasses.dataclass
class OverlayPrimitive:
    """A sphere primitive owned by the overlay, tagged with its link."""

    link_name: str
    node: SceneNode = dataclasses.field(repr=False)
    sphere: Sphere


def _unpack_entry(entry: Any) -> Tuple[Optional[str], Sequence[Any]]:
    """Split an entry into link name and spheres; a set without a link gets ``""``."""
    if isinstance(entry, LinkSphereSet):
        link, spheres = entry.link, entry.spheres
    elif isinstance(entry, Mapping):
        link, spheres = entry.get("link"), entry.get("spheres")
    else:
        return None, ()
    if not isinstance(spheres, (list, tuple)):
        spheres = ()
    return ("" if link is None else str(link)), spheres


class CollisionOverlay:
    """Shows, hides and clears collision spheres on top of a loaded model.

    The overlay owns every primitive it creates and never touches other scene
    nodes. Colors and materials are cached per link for the overlay's lifetime,
    so a link keeps its color across clear and re-show cycles.
    """

    def __init__(
        self,
        backend: SceneBackend,
        config: Optional[OverlayConfig] = None,
    ) -> None:
        self._backend = backend
        self.config = config if config is not None else OverlayConfig()

        self._primitives: List[OverlayPrimitive] = []
        self._visible = True
        self._link_materials: Dict[str, SphereMaterial] = {}
        self._next_id = itertools.count(0)

    @property
    def visible(self) -> bool:
        return self._visible

    @property
    def primitives(self) -> Tuple[OverlayPrimitive, ...]:
        return tuple(self._primitives)

    @property
    def primitive_count(self) -> int:
        return len(self._primitives)

    @property
    def links(self) -> List[str]:
        """Names of links that currently have spheres shown, in display order."""
        return list(dict.fromkeys(p.link_name for p in self._primitives))

    def show_from_parsed(self, model: Any, link_sphere_sets: Sequence[Any]) -> None:
        """Replace the displayed spheres with ``link_sphere_sets`` attached to ``model``.

        Silently does nothing when ``model`` has no ``root_node`` or the sets are
        not a list, so a half loaded model never tears down the current overlay.
        Sets whose link is missing or not in the scene hang off ``model.root_node``;
        sets without a link name use the fallback color.
        """
        root = getattr(model, "root_node", None) if model is not None else None
        if root is None:
            logger.debug("Model has no root node, skipping collision sphere overlay")
            return
        if not isinstance(link_sphere_sets, (list, tuple)):
            logger.debug(
                f"Expected a list of link sphere sets, got {type(link_sphere_sets).__name__}"
            )
            return

        self.clear()

        created: List[OverlayPrimitive] = []
        for entry in link_sphere_sets:
            link_name, spheres = _unpack_entry(entry)
            if link_name is None:
                logger.warning(f"Skipping entry that is not a link sphere set: {entry!r}")
                continue

            parent = self.find_link_node(root, link_name)
            if parent is None:
                logger.debug(f"Link {link_name!r} not found in scene, attaching to model root")
                parent = root

            material = self.material_for_link(link_name)
            for raw in spheres:
                sphere = Sphere.from_raw(raw, self.config.default_radius)
                node = self._backend.add_sphere(
                    parent,
                    f"{link_name.replace('/', '_')}_{next(self._next_id)}",
                    sphere,
                    material,
                    self.config.sphere_segments,
                )
                parent.add(node)
                primitive = OverlayPrimitive(link_name=link_name, node=node, sphere=sphere)
                self._primitives.append(primitive)
                created.append(primitive)

        for primitive in created:
            primitive.node.visible = self._visible

        logger.debug(
            f"Showing {len(created)} collision spheres on {len(self.links)} links"
        )

    def find_link_node(self, root: Optional[SceneNode], link_name: str) -> Optional[SceneNode]:
        """Find the scene node for a link by exact name or a known name prefix."""
        if root is None or not link_name:
            return None
        candidates = {link_name}
        candidates.update(prefix + link_name for prefix in self.config.link_prefixes)
        return root.find(lambda node: node.name in candidates)

    def set_visible(self, visible: Any) -> None:
        """Show or hide every active sphere; later shows inherit this state."""
        self._visible = bool(visible)
        for primitive in self._primitives:
            primitive.node.visible = self._visible

    def clear(self) -> None:
        """Detach and destroy every sphere created by this overlay."""
        for primitive in self._primitives:
            node = primitive.node
            if node.parent is not None:
                node.parent.remove(node)
            self._backend.remove(node)
        self._primitives = []

    def color_for_link(self, link_name: Optional[str]) -> Color:
        return color_for_link(link_name, fallback=self.config.fallback_color)

    def material_for_link(self, link_name: str) -> SphereMaterial:
        """Return the material shared by all spheres of ``link_name``, creating it once."""
        material = self._link_materials.get(link_name)
        if material is None:
            material = SphereMaterial(
                color=self.color_for_link(link_name), opacity=self.config.opacity
            )
            self._link_materials[link_name] = material
        return material

    def update_link_material(
        self,
        link_name: str,
        color: Optional[Color] = None,
        opacity: Optional[float] = None,
    ) -> SphereMaterial:
        """Change a link's shared material and apply it to all of that link's spheres."""
        material = self.material_for_link(link_name)
        if color is not None:
            material.color = tuple(float(c) for c in color[:3])
        if opacity is not None:
            material.opacity = min(1.0, max(0.0, float(opacity)))

        for primitive in self._primitives:
            if primitive.link_name == link_name:
                self._backend.apply_material(primitive.node, material)
        return material

    def set_opacity(self, opacity: float) -> None:
        """Set the opacity of every link material, including links not shown yet."""
        self.config.opacity = min(1.0, max(0.0, float(opacity)))
        for link_name in list(self._link_materials):
            self.update_link_material(link_name, opacity=self.config.opacity)
