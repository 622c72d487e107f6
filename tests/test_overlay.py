import pytest

from collisionviz.core import (
    FALLBACK_LINK_COLOR,
    LinkSphereSet,
    OverlayConfig,
    SphereMaterial,
    color_for_link,
)
from collisionviz.overlay import CollisionOverlay
from collisionviz.scene import SceneNode

from conftest import FakeModel


@pytest.fixture
def overlay(backend):
    return CollisionOverlay(backend)


def _sets():
    return [
        LinkSphereSet("arm", [{"origin": [0, 0, 0.1], "radius": 0.05}, {"origin": [0, 0, 0.2]}]),
        LinkSphereSet("wheel", [{"origin": [1, 0, 0], "radius": 0.2}]),
        LinkSphereSet("torso", [{"origin": [0, 1, 0], "radius": 0.3}]),
        LinkSphereSet("antenna", [{"origin": [0, 0, 1], "radius": 0.01}]),
    ]


def _parent_names(overlay):
    return {p.link_name: p.node.parent.name for p in overlay.primitives}


def test_show_attaches_spheres_to_resolved_link_nodes(overlay, backend, robot):
    overlay.show_from_parsed(robot, _sets())

    assert overlay.primitive_count == 5
    assert _parent_names(overlay) == {
        "arm": "link_arm",
        "wheel": "body_wheel",
        "torso": "torso",
        "antenna": "base_link",  # unresolved links fall back to the model root
    }
    radii = [h.radius for h in backend.created]
    assert radii == [0.05, 0.01, 0.2, 0.3, 0.01]
    assert backend.created[0].position == (0.0, 0.0, 0.1)
    assert all(h.segments == (16, 12) for h in backend.created)


def test_first_matching_node_in_traversal_order_wins(overlay, robot):
    robot.root_node.add(SceneNode("link_torso"))
    overlay.show_from_parsed(robot, [LinkSphereSet("torso", [{"radius": 0.1}])])
    assert _parent_names(overlay) == {"torso": "torso"}

    # A prefixed name earlier in the traversal beats an exact name later on
    robot.root_node.children[0].add(SceneNode("body_torso"))
    overlay.show_from_parsed(robot, [LinkSphereSet("torso", [{"radius": 0.1}])])
    assert _parent_names(overlay) == {"torso": "body_torso"}


def test_show_accepts_plain_mappings(overlay, robot):
    overlay.show_from_parsed(
        robot, [{"link": "gripper", "spheres": [{"origin": [0, 0, 0], "radius": 0.02}]}, 42]
    )
    assert overlay.primitive_count == 1
    assert overlay.primitives[0].node.parent.name == "gripper"


@pytest.mark.parametrize(
    "entry",
    [
        {"spheres": [{"origin": [0, 0, 0], "radius": 0.1}]},
        {"link": None, "spheres": [{"origin": [0, 0, 0], "radius": 0.1}]},
    ],
)
def test_sphere_set_without_link_renders_at_model_root(overlay, backend, robot, entry):
    overlay.show_from_parsed(robot, [entry])

    assert overlay.primitive_count == 1
    primitive = overlay.primitives[0]
    assert primitive.link_name == ""
    assert primitive.node.parent is robot.root_node
    assert primitive.node.parent.name == "base_link"
    assert primitive.node.handle.material.color == FALLBACK_LINK_COLOR
    assert backend.created[0].color == (255, 68, 68)
    assert backend.created[0].radius == 0.1


def test_entries_that_are_not_sphere_sets_are_skipped(overlay, robot):
    overlay.show_from_parsed(robot, [42, "torso", None, LinkSphereSet("torso", [{}])])
    assert overlay.primitive_count == 1
    assert overlay.primitives[0].node.parent.name == "torso"


def test_show_is_idempotent(overlay, backend, robot):
    overlay.show_from_parsed(robot, _sets())
    first = overlay.primitive_count
    overlay.show_from_parsed(robot, _sets())
    assert overlay.primitive_count == first
    # Every primitive of the first show was destroyed and detached
    assert len(backend.removed) == first
    attached = [
        n for n in robot.root_node.traverse() if n.handle is not None
    ]
    assert len(attached) == first


def test_show_with_empty_list_clears(overlay, robot):
    overlay.show_from_parsed(robot, _sets())
    overlay.show_from_parsed(robot, [])
    assert overlay.primitive_count == 0


@pytest.mark.parametrize(
    "model, sets",
    [
        (None, []),
        (FakeModel(None), []),
        (object(), []),
        ("robot", "not a list"),
    ],
)
def test_show_with_invalid_arguments_is_a_noop(overlay, robot, model, sets):
    overlay.show_from_parsed(robot, _sets())
    before = overlay.primitives
    if model == "robot":
        model = robot
    overlay.show_from_parsed(model, sets)
    assert overlay.primitives == before


def test_missing_radius_uses_default(overlay, backend, robot):
    overlay.show_from_parsed(robot, [LinkSphereSet("torso", [{"origin": [0, 0, 0]}])])
    assert backend.created[0].radius == 0.01
    assert overlay.primitives[0].sphere.radius == 0.01


def test_default_radius_is_configurable(backend, robot):
    overlay = CollisionOverlay(backend, config=OverlayConfig(default_radius=0.2))
    overlay.show_from_parsed(robot, [LinkSphereSet("torso", [{}])])
    assert backend.created[0].radius == 0.2


def test_set_visible_propagates_to_new_primitives(overlay, robot):
    overlay.show_from_parsed(robot, _sets())
    overlay.set_visible(False)
    assert all(not p.node.visible for p in overlay.primitives)

    overlay.show_from_parsed(robot, _sets())
    assert all(not p.node.visible for p in overlay.primitives)
    assert all(p.node.handle.visible is False for p in overlay.primitives)

    overlay.set_visible(1)
    assert overlay.visible is True
    assert all(p.node.visible for p in overlay.primitives)


def test_set_visible_coerces_to_bool(overlay):
    overlay.set_visible("")
    assert overlay.visible is False
    overlay.set_visible([0])
    assert overlay.visible is True


def test_clear_detaches_everything(overlay, backend, robot):
    overlay.show_from_parsed(robot, _sets())
    parents = [p.node.parent for p in overlay.primitives]
    overlay.clear()

    assert overlay.primitive_count == 0
    assert all(h.removed for h in backend.created)
    for parent in parents:
        assert all(child.handle is None for child in parent.children)
    assert sum(1 for n in robot.root_node.traverse()) == 5

    overlay.clear()
    assert overlay.primitive_count == 0


def test_materials_are_shared_per_link_and_survive_clear(overlay, robot):
    overlay.show_from_parsed(robot, _sets())
    arm_spheres = [p for p in overlay.primitives if p.link_name == "arm"]
    assert arm_spheres[0].node.handle.material is arm_spheres[1].node.handle.material

    material = overlay.material_for_link("arm")
    overlay.clear()
    overlay.show_from_parsed(robot, _sets())
    assert overlay.material_for_link("arm") is material
    assert isinstance(material, SphereMaterial)
    assert material.depth_test and not material.depth_write
    assert not material.cast_shadow and not material.receive_shadow
    assert not material.pickable
    assert material.opacity == pytest.approx(0.45)


def test_materials_get_link_colors(overlay):
    assert overlay.material_for_link("wheel").color == color_for_link("wheel")
    assert overlay.color_for_link("") == overlay.config.fallback_color


def test_update_link_material_recolors_all_siblings(overlay, robot):
    overlay.show_from_parsed(robot, _sets())
    overlay.update_link_material("arm", color=(0.0, 1.0, 0.0), opacity=0.8)

    for primitive in overlay.primitives:
        if primitive.link_name == "arm":
            assert primitive.node.handle.color == (0, 255, 0)
            assert primitive.node.handle.opacity == pytest.approx(0.8)
        else:
            assert primitive.node.handle.opacity == pytest.approx(0.45)


def test_set_opacity_updates_every_link(overlay, robot):
    overlay.show_from_parsed(robot, _sets())
    overlay.set_opacity(1.5)
    assert overlay.config.opacity == 1.0
    assert all(p.node.handle.opacity == 1.0 for p in overlay.primitives)


def test_links_lists_shown_links_in_order(overlay, robot):
    overlay.show_from_parsed(robot, _sets())
    assert overlay.links == ["arm", "wheel", "torso", "antenna"]
