from __future__ import annotations

import dataclasses
from typing import List, Optional, Tuple

import pytest

from collisionviz.core import Sphere, SphereMaterial
from collisionviz.scene import SceneNode


@dataclasses.dataclass
class FakeHandle:
    name: str
    radius: float
    position: Tuple[float, float, float]
    segments: Tuple[int, int]
    material: SphereMaterial
    color: Tuple[int, int, int] = (0, 0, 0)
    opacity: float = 1.0
    visible: bool = True
    removed: bool = False

    def remove(self) -> None:
        self.removed = True


class FakeSceneBackend:
    """Records sphere primitives instead of rendering them."""

    def __init__(self) -> None:
        self.created: List[FakeHandle] = []
        self.removed: List[FakeHandle] = []

    def add_sphere(self, parent, name, sphere: Sphere, material, segments=(16, 12)):
        handle = FakeHandle(
            name=f"{parent.path.rstrip('/')}/{name}",
            radius=sphere.radius,
            position=sphere.origin,
            segments=tuple(segments),
            material=material,
            color=material.color_uint8,
            opacity=material.opacity,
        )
        self.created.append(handle)
        return SceneNode(name, handle=handle)

    def apply_material(self, node, material) -> None:
        node.handle.color = material.color_uint8
        node.handle.opacity = material.opacity

    def remove(self, node) -> None:
        if node.handle is not None:
            node.handle.remove()
            self.removed.append(node.handle)
            node.handle = None


class FakeModel:
    def __init__(self, root_node: Optional[SceneNode]) -> None:
        self.root_node = root_node


def build_tree(spec) -> SceneNode:
    """Build a scene tree from nested ``(name, [children])`` tuples."""
    name, children = spec
    node = SceneNode(name)
    for child in children:
        node.add(build_tree(child))
    return node


@pytest.fixture
def backend() -> FakeSceneBackend:
    return FakeSceneBackend()


@pytest.fixture
def robot() -> FakeModel:
    return FakeModel(
        build_tree(
            (
                "base_link",
                [
                    ("link_arm", [("gripper", []), ("body_wheel", [])]),
                    ("torso", []),
                ],
            )
        )
    )
