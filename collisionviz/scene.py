"""Scene graph view used by the overlay, and the viser backend that renders into it."""

from __future__ import annotations

from typing import Callable, Iterator, List, Optional, Protocol, Tuple

import trimesh
import viser
from loguru import logger

from .core import DEFAULT_SPHERE_SEGMENTS, Sphere, SphereMaterial


class SceneNode:
    """A named node of the scene tree.

    ``handle`` is the render object backing the node (a viser scene node handle for
    the live viewer), or None for purely structural nodes.
    """

    def __init__(self, name: Optional[str], handle=None) -> None:
        self.name = name
        self.handle = handle
        self.parent: Optional[SceneNode] = None
        self.children: List[SceneNode] = []
        self._visible = True

    def __repr__(self) -> str:
        return f"SceneNode(name={self.name!r}, children={len(self.children)})"

    @property
    def path(self) -> str:
        """Scene path of this node, used to name render objects below it."""
        handle_name = getattr(self.handle, "name", None)
        if isinstance(handle_name, str):
            return handle_name
        if self.parent is None:
            return "/"
        return f"{self.parent.path.rstrip('/')}/{self.name}"

    @property
    def visible(self) -> bool:
        return self._visible

    @visible.setter
    def visible(self, visible: bool) -> None:
        self._visible = bool(visible)
        if self.handle is not None:
            self.handle.visible = self._visible

    def add(self, child: "SceneNode") -> "SceneNode":
        """Attach ``child`` below this node, detaching it from any previous parent."""
        if child.parent is not None:
            child.parent.remove(child)
        child.parent = self
        self.children.append(child)
        return child

    def remove(self, child: "SceneNode") -> None:
        if child in self.children:
            self.children.remove(child)
        child.parent = None

    def traverse(self) -> Iterator["SceneNode"]:
        """Yield this node and every descendant once, depth first, parents before children."""
        stack = [self]
        while stack:
            node = stack.pop()
            yield node
            stack.extend(reversed(node.children))

    def find(self, predicate: Callable[["SceneNode"], bool]) -> Optional["SceneNode"]:
        """Return the first node in traversal order matching ``predicate``."""
        for node in self.traverse():
            if predicate(node):
                return node
        return None


class SceneBackend(Protocol):
    """Creates and destroys the render objects behind overlay scene nodes."""

    def add_sphere(
        self,
        parent: SceneNode,
        name: str,
        sphere: Sphere,
        material: SphereMaterial,
        segments: Tuple[int, int] = DEFAULT_SPHERE_SEGMENTS,
    ) -> SceneNode:
        """Create a sphere primitive positioned in ``parent``'s frame (not yet attached)."""
        ...

    def apply_material(self, node: SceneNode, material: SphereMaterial) -> None:
        """Push ``material``'s color and opacity to an existing primitive."""
        ...

    def remove(self, node: SceneNode) -> None:
        """Destroy the render object behind ``node``."""
        ...


class ViserSceneBackend:
    """Renders overlay spheres as viser meshes.

    viser nests scene nodes by name, so a sphere created below a link frame's name
    inherits that frame's transform. Spheres are never given click callbacks, which
    keeps them out of viser's pointer queries. viser does not expose depth writes
    per mesh, so ``material.depth_write`` only informs other backends.
    """

    def __init__(self, target: viser.ViserServer | viser.ClientHandle) -> None:
        self._target = target

    def add_sphere(
        self,
        parent: SceneNode,
        name: str,
        sphere: Sphere,
        material: SphereMaterial,
        segments: Tuple[int, int] = DEFAULT_SPHERE_SEGMENTS,
    ) -> SceneNode:
        path = f"{parent.path.rstrip('/')}/collision_spheres/{name}"
        mesh = trimesh.creation.uv_sphere(radius=sphere.radius, count=list(segments))
        handle = self._target.scene.add_mesh_simple(
            path,
            mesh.vertices,
            mesh.faces,
            color=material.color_uint8,
            opacity=material.opacity,
            side="double",
            cast_shadow=material.cast_shadow,
            receive_shadow=material.receive_shadow,
            position=sphere.origin,
        )
        return SceneNode(name, handle=handle)

    def apply_material(self, node: SceneNode, material: SphereMaterial) -> None:
        if node.handle is None:
            return
        node.handle.color = material.color_uint8
        node.handle.opacity = material.opacity

    def remove(self, node: SceneNode) -> None:
        if node.handle is None:
            return
        try:
            node.handle.remove()
        except Exception as e:
            # Node might already be removed together with its parent frame
            logger.debug(f"Ignoring failed removal of {node.path}: {e}")
        finally:
            node.handle = None
