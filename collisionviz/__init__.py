"""Collision sphere overlay for URDF robots in viser."""

from .core import LinkSphereSet as LinkSphereSet
from .core import OverlayConfig as OverlayConfig
from .core import Sphere as Sphere
from .core import SphereMaterial as SphereMaterial
from .core import color_for_link as color_for_link
from .core import reduce_sphere_hierarchy as reduce_sphere_hierarchy
from .overlay import CollisionOverlay as CollisionOverlay
from .overlay import OverlayPrimitive as OverlayPrimitive
from .scene import SceneNode as SceneNode

__version__ = "0.1.0"
