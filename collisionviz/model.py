"""URDF model loaded into viser, exposing its link frames as a scene tree."""

from __future__ import annotations

import warnings
from functools import partial
from pathlib import Path
from typing import Dict, List, Optional, Tuple

import numpy as np
import trimesh
import viser
import yourdfpy
from trimesh.scene import Scene

from viser import transforms as tf

from .scene import SceneNode


class ViserUrdfModel:
    """URDF visualizer whose link frames double as attachment points.

    ``root_node`` is a :class:`SceneNode` tree mirroring the kinematic tree: the base
    link at the root and one node per joint child link, each backed by the viser
    frame that link's meshes hang from.
    """

    def __init__(
        self,
        target: viser.ViserServer | viser.ClientHandle,
        urdf_or_path: yourdfpy.URDF | Path,
        scale: float = 1.0,
        root_node_name: str = "/",
        load_meshes: bool = True,
    ) -> None:
        assert root_node_name.startswith("/")
        assert len(root_node_name) == 1 or not root_node_name.endswith("/")

        if isinstance(urdf_or_path, Path):
            urdf = yourdfpy.URDF.load(
                urdf_or_path,
                build_scene_graph=True,
                load_meshes=load_meshes,
                filename_handler=partial(
                    yourdfpy.filename_handler_magic,
                    dir=urdf_or_path.parent,
                ),
            )
        else:
            urdf = urdf_or_path
        assert isinstance(urdf, yourdfpy.URDF)

        self._target = target
        self._urdf = urdf
        self._scale = scale
        self._joint_frames: List[viser.FrameHandle] = []
        self._meshes: List[viser.SceneNodeHandle] = []

        self.link_frame: Dict[str, viser.FrameHandle] = {}
        self.root_node: Optional[SceneNode] = None

        scene = urdf.scene if load_meshes else None
        if load_meshes and scene is None:
            warnings.warn(
                "load_meshes is enabled but the URDF model does not have a visual scene configured. Not displaying meshes."
            )
        self._root_frame = self._add_joint_frames_and_meshes(scene, root_node_name)
        self.root_node = self._build_link_tree()

    @property
    def base_link(self) -> str:
        return self._urdf.base_link

    @property
    def show_visual(self) -> bool:
        """Returns whether the robot meshes are currently visible."""
        return all(mesh_handle.visible for mesh_handle in self._meshes)

    @show_visual.setter
    def show_visual(self, visible: bool) -> None:
        for mesh_handle in self._meshes:
            mesh_handle.visible = visible

    def _build_link_tree(self) -> SceneNode:
        """Mirror the URDF's kinematic tree as scene nodes backed by link frames."""
        nodes: Dict[str, SceneNode] = {
            self.base_link: SceneNode(self.base_link, handle=self._root_frame)
        }
        self.link_frame[self.base_link] = self._root_frame

        joints = list(self._urdf.joint_map.values())
        for joint, frame_handle in zip(joints, self._joint_frames):
            nodes[joint.child] = SceneNode(joint.child, handle=frame_handle)
            self.link_frame[joint.child] = frame_handle

        # Joints can be listed in any order, so link parents only once all nodes exist
        for joint in joints:
            parent = nodes.get(joint.parent)
            if parent is None:
                warnings.warn(f"Joint {joint.name} references unknown parent link {joint.parent}")
                parent = nodes[self.base_link]
            parent.add(nodes[joint.child])
        return nodes[self.base_link]

    def get_link_node(self, link_name: str) -> Optional[SceneNode]:
        return self.root_node.find(lambda node: node.name == link_name)

    def remove(self) -> None:
        """Remove URDF from scene."""
        for frame in self._joint_frames:
            frame.remove()
        for mesh in self._meshes:
            mesh.remove()
        self._root_frame.remove()

    def update_cfg(self, configuration: np.ndarray) -> None:
        """Set the actuated joint positions and move each child link frame to match."""
        self._urdf.update_cfg(configuration)
        for joint in self._urdf.joint_map.values():
            pose = self._urdf.get_transform(joint.child, joint.parent)
            frame = self.link_frame[joint.child]
            frame.wxyz = tf.SO3.from_matrix(pose[:3, :3]).wxyz
            frame.position = pose[:3, 3] * self._scale

    def get_actuated_joint_limits(self) -> Dict[str, Tuple[float, float]]:
        """Position limits of the actuated joints in configuration order.

        Joints without a ``<limit>`` (or without one of its bounds) get -pi / pi.
        """
        limits: Dict[str, Tuple[float, float]] = {}
        for joint in self._urdf.actuated_joints:
            lower = getattr(joint.limit, "lower", None)
            upper = getattr(joint.limit, "upper", None)
            limits[joint.name] = (
                -np.pi if lower is None else float(lower),
                np.pi if upper is None else float(upper),
            )
        return limits

    def _add_joint_frames_and_meshes(
        self, scene: Optional[Scene], root_node_name: str
    ) -> viser.FrameHandle:
        """Add one frame per joint child link, plus the visual meshes if loaded."""
        robot_root = f"{root_node_name}/robot".replace("//", "/")
        root_frame = self._target.scene.add_frame(robot_root, show_axes=False)

        for joint in self._urdf.joint_map.values():
            frame_name = _viser_name_from_link(self._urdf, joint.child, robot_root)
            self._joint_frames.append(self._target.scene.add_frame(frame_name, show_axes=False))

        if scene is None:
            return root_frame

        for mesh_name, mesh in scene.geometry.items():
            assert isinstance(mesh, trimesh.Trimesh)
            link_name = scene.graph.transforms.parents[mesh_name]
            frame_name = _viser_name_from_link(self._urdf, link_name, robot_root)

            # Meshes are placed in their link's frame, so bake the visual origin in
            mesh = mesh.copy()
            mesh.apply_scale(self._scale)
            mesh.apply_transform(self._urdf.get_transform(mesh_name, link_name))
            self._meshes.append(
                self._target.scene.add_mesh_trimesh(f"{frame_name}/{mesh_name}", mesh)
            )
        return root_frame


def _viser_name_from_link(
    urdf: yourdfpy.URDF,
    link_name: str,
    root_node_name: str = "/",
) -> str:
    """Given a link of the URDF's kinematic tree, return its viser scene node name."""
    parent_of = {joint.child: joint.parent for joint in urdf.joint_map.values()}
    frames = []
    while link_name != urdf.base_link and link_name in parent_of:
        frames.append(link_name)
        link_name = parent_of[link_name]
    frames.append(root_node_name.rstrip("/"))
    return "/".join(frames[::-1])
