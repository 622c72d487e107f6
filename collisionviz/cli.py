"""Command line entry point for the collision sphere viewer.

Usage:
    collisionviz --spheres-path spheres.json
    collisionviz --urdf-path robot.urdf --spheres-path spheres.yml --opacity 0.3
"""

from __future__ import annotations

from pathlib import Path
from typing import Optional

import tyro

from .core import DEFAULT_SPHERE_OPACITY, OverlayConfig
from .gui import CollisionViewerApp


def main(
    robot_name: str = "panda",
    urdf_path: Optional[Path] = None,
    spheres_path: Optional[Path] = None,
    port: int = 8080,
    opacity: float = DEFAULT_SPHERE_OPACITY,
) -> None:
    """Show collision spheres on a robot in a viser viewer.

    Args:
        robot_name: Robot from robot_descriptions, used when no URDF path is given.
        urdf_path: Path to a custom URDF file.
        spheres_path: Sphere hierarchy (JSON or YAML) to show on startup.
        port: Port for the viser web server.
        opacity: Sphere opacity (0.0 to 1.0).
    """
    app = CollisionViewerApp(
        robot_name=robot_name,
        urdf_path=urdf_path,
        spheres_path=spheres_path,
        port=port,
        config=OverlayConfig(opacity=opacity),
    )
    app.run()


def entrypoint() -> None:
    tyro.cli(main)


if __name__ == "__main__":
    entrypoint()
