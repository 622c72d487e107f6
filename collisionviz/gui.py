"""Interactive viser viewer showing collision spheres on a URDF robot."""

from __future__ import annotations

import threading
import time
from pathlib import Path
from typing import List, Optional

import numpy as np
import viser
import yourdfpy
from robot_descriptions.loaders.yourdfpy import load_robot_description

from .core import LinkSphereSet, OverlayConfig
from .io import (
    HierarchyLoadError,
    inject_spheres_into_urdf_xml,
    link_sphere_sets_to_yaml,
    load_link_sphere_sets,
)
from .model import ViserUrdfModel
from .overlay import CollisionOverlay
from .scene import ViserSceneBackend


class CollisionViewerApp:
    """Main application class for viewing collision spheres on a robot."""

    def __init__(
        self,
        robot_name: str = "panda",
        urdf_path: Optional[Path] = None,
        spheres_path: Optional[Path] = None,
        port: int = 8080,
        config: Optional[OverlayConfig] = None,
    ):
        """Initialize the viewer.

        Args:
            robot_name: Name of robot from robot_descriptions (used if urdf_path is None)
            urdf_path: Path to custom URDF file
            spheres_path: Sphere hierarchy (JSON/YAML) to show on startup
            port: Viser server port
            config: Overlay defaults (opacity, tessellation, fallback color)
        """
        self.server = viser.ViserServer(port=port)
        self.config = config if config is not None else OverlayConfig()

        # Load URDF
        if urdf_path is not None:
            self.urdf = yourdfpy.URDF.load(
                str(urdf_path),
                build_scene_graph=True,
                load_meshes=True,
            )
            self.urdf_path = urdf_path
        else:
            self.urdf = load_robot_description(
                robot_name + "_description",
                load_meshes=True,
                build_scene_graph=True,
            )
            self.urdf_path = None

        self.model = ViserUrdfModel(self.server, urdf_or_path=self.urdf)

        # viser runs GUI callbacks on its own threads
        self._lock = threading.Lock()
        self.overlay = CollisionOverlay(ViserSceneBackend(self.server), config=self.config)
        self.spheres_path = spheres_path
        self.link_sphere_sets: List[LinkSphereSet] = []

        self.joint_sliders: List[viser.GuiInputHandle[float]] = []
        self._status = None
        self._counts = None

        self._setup_robot_controls()
        self._setup_overlay_controls()
        self._setup_export_controls()
        self._add_reference_grid()

        if spheres_path is not None:
            self.load_spheres(spheres_path)

        print(f"🎯 collisionviz server running at http://localhost:{port}")

    def load_spheres(self, path: Path) -> bool:
        """Load a sphere dataset and show it on the robot. Returns False on failure."""
        try:
            link_sphere_sets = load_link_sphere_sets(path)
        except HierarchyLoadError as e:
            print(f"❌ Failed to load collision spheres: {e}")
            self._set_status(f"❌ {e}")
            return False

        self.spheres_path = path
        self.show(link_sphere_sets)
        print(f"✅ Loaded {self.overlay.primitive_count} spheres from {path.name}")
        return True

    def show(self, link_sphere_sets: List[LinkSphereSet]) -> None:
        with self._lock:
            self.link_sphere_sets = list(link_sphere_sets)
            self.overlay.show_from_parsed(self.model, self.link_sphere_sets)
        self._update_counts()

    def _setup_robot_controls(self):
        """Setup robot configuration controls."""
        with self.server.gui.add_folder("🤖 Robot Controls"):
            initial_config = []

            for joint_name, (lower, upper) in self.model.get_actuated_joint_limits().items():
                lower = lower if lower is not None else -np.pi
                upper = upper if upper is not None else np.pi
                initial_pos = 0.0 if lower < -0.1 and upper > 0.1 else (lower + upper) / 2.0

                slider = self.server.gui.add_slider(
                    label=joint_name,
                    min=lower,
                    max=upper,
                    step=1e-3,
                    initial_value=initial_pos,
                )
                self.joint_sliders.append(slider)
                initial_config.append(initial_pos)

            def update_robot_config():
                config = np.array([s.value for s in self.joint_sliders])
                self.model.update_cfg(config)

            for slider in self.joint_sliders:
                slider.on_update(lambda _: update_robot_config())

            update_robot_config()

            reset_joints_btn = self.server.gui.add_button("🏠 Reset to Home")

            @reset_joints_btn.on_click
            def _(_):
                for slider, init_val in zip(self.joint_sliders, initial_config):
                    slider.value = init_val

    def _setup_overlay_controls(self):
        """Setup collision sphere visibility and appearance controls."""
        with self.server.gui.add_folder("⚪ Collision Spheres"):
            show_spheres_cb = self.server.gui.add_checkbox(
                "Show Spheres", initial_value=self.overlay.visible
            )
            show_robot_cb = self.server.gui.add_checkbox("Show Robot", initial_value=True)
            opacity_slider = self.server.gui.add_slider(
                "Opacity", min=0.0, max=1.0, step=0.05, initial_value=self.config.opacity
            )
            dataset_input = self.server.gui.add_text(
                "Dataset",
                initial_value=str(self.spheres_path) if self.spheres_path else "",
            )
            reload_btn = self.server.gui.add_button("🔄 Load / Reload")
            clear_btn = self.server.gui.add_button("🗑️ Clear")
            self._counts = self.server.gui.add_text(
                "Spheres", initial_value="0", disabled=True
            )
            self._status = self.server.gui.add_markdown("")

            @show_spheres_cb.on_update
            def _(_):
                with self._lock:
                    self.overlay.set_visible(show_spheres_cb.value)

            @show_robot_cb.on_update
            def _(_):
                self.model.show_visual = show_robot_cb.value

            @opacity_slider.on_update
            def _(_):
                with self._lock:
                    self.overlay.set_opacity(opacity_slider.value)

            @reload_btn.on_click
            def _(_):
                if not dataset_input.value:
                    self._set_status("No dataset path given")
                    return
                if self.load_spheres(Path(dataset_input.value)):
                    self._set_status(f"✅ Showing {self.overlay.primitive_count} spheres")

            @clear_btn.on_click
            def _(_):
                with self._lock:
                    self.overlay.clear()
                self._update_counts()
                self._set_status("Cleared")

    def _setup_export_controls(self):
        """Setup export functionality."""
        with self.server.gui.add_folder("💾 Export"):
            default_name = "collision_spheres"
            if self.urdf_path and self.urdf_path.stem:
                default_name = f"{self.urdf_path.stem}_spheres"

            export_name_input = self.server.gui.add_text("Export Name", initial_value=default_name)
            export_yml_btn = self.server.gui.add_button("Export Spheres (YAML)")
            export_urdf_btn = self.server.gui.add_button("Export URDF with Spheres")
            export_status = self.server.gui.add_markdown("Ready to export")

            def output_dir() -> Path:
                if self.urdf_path and self.urdf_path.parent:
                    return self.urdf_path.parent
                return Path.cwd()

            @export_yml_btn.on_click
            def _(_):
                try:
                    output_path = output_dir() / f"{export_name_input.value}.yml"
                    output_path.write_text(link_sphere_sets_to_yaml(self.link_sphere_sets))
                    export_status.content = f"✅ Saved to: {output_path.name}"
                    print(f"Exported collision spheres to {output_path.absolute()}")
                except OSError as e:
                    export_status.content = f"❌ Export failed: {e}"
                    print(f"Export failed: {e}")

            @export_urdf_btn.on_click
            def _(_):
                try:
                    urdf_xml = inject_spheres_into_urdf_xml(
                        self.urdf_path, self.urdf, self.link_sphere_sets
                    )
                    output_path = output_dir() / f"{export_name_input.value}.urdf"
                    output_path.write_text(urdf_xml)
                    export_status.content = f"✅ Saved to: {output_path.name}"
                    print(f"Exported URDF with collision spheres to {output_path.absolute()}")
                except Exception as e:
                    export_status.content = f"❌ URDF export failed: {type(e).__name__}"
                    print(f"URDF export failed: {e}")

    def _set_status(self, message: str) -> None:
        if self._status is not None:
            self._status.content = message

    def _update_counts(self) -> None:
        if self._counts is not None:
            self._counts.value = (
                f"{self.overlay.primitive_count} on {len(self.overlay.links)} links"
            )

    def _add_reference_grid(self):
        """Add a reference grid to the scene."""
        try:
            z_pos = self.urdf.scene.bounds[0, 2] if self.urdf.scene is not None else 0.0
        except (AttributeError, IndexError, TypeError):
            z_pos = 0.0

        self.server.scene.add_grid(
            "/reference_grid",
            width=2,
            height=2,
            position=(0.0, 0.0, z_pos),
            cell_color=(200, 200, 200),
            cell_thickness=1.0,
        )

    def run(self):
        """Run the application (blocking)."""
        print("🚀 Application running! Use Ctrl+C to exit.")
        try:
            while True:
                time.sleep(0.1)
        except KeyboardInterrupt:
            print("\n👋 Shutting down collisionviz...")
        finally:
            with self._lock:
                self.overlay.clear()
            self.model.remove()
