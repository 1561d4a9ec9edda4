import unittest

import numpy as np

from rigkit.assets.animations.clip import AnimationClip, Track
from rigkit.assets.animations.skeleton import Bone, Pose, Skeleton
from rigkit.config import BodyModifiers
from rigkit.gameobjects.animation.animation_utils import quat_from_axis_angle
from rigkit.gameobjects.player.mannequin.skeleton_builder import build_skeleton


class TestSkeletonBuilder(unittest.TestCase):
    def test_twenty_bones_one_root(self):
        skeleton = build_skeleton(1.75, 1.6)
        self.assertEqual(skeleton.count, 20)
        self.assertEqual(len(set(skeleton.names)), 20)
        self.assertEqual([i for i, p in enumerate(skeleton.parents) if p < 0], [skeleton.root])
        self.assertEqual(skeleton.names[skeleton.root], "Hips")

    def test_hierarchy(self):
        skeleton = build_skeleton()
        self.assertEqual(skeleton.bone("Spine2").parent, "Spine1")
        self.assertEqual(skeleton.bone("Neck").parent, "Spine2")
        self.assertEqual(skeleton.bone("LeftShoulder").parent, "Spine1")
        self.assertEqual(skeleton.bone("RightUpLeg").parent, "Hips")
        self.assertEqual(skeleton.children_of("Hips"), ["Spine", "LeftUpLeg", "RightUpLeg"])

    def test_deterministic(self):
        a = build_skeleton(1.75, 1.6)
        b = build_skeleton(1.75, 1.6)
        for x, y in zip(a.bones, b.bones):
            self.assertEqual(x.name, y.name)
            np.testing.assert_array_equal(x.translation, y.translation)

    def test_vertical_offsets_scale_with_height(self):
        short = build_skeleton(1.75, 1.6)
        tall = build_skeleton(2.0, 1.6)
        ratio = 2.0 / 1.75
        for name in ("Hips", "Spine", "Neck", "Head", "LeftLeg"):
            self.assertAlmostEqual(tall.bone(name).translation[1], short.bone(name).translation[1] * ratio)
        self.assertAlmostEqual(tall.world_position("Head")[1], short.world_position("Head")[1] * ratio, delta=1e-5)
        # arm chain follows the span, not the height
        np.testing.assert_allclose(tall.bone("LeftArm").translation, short.bone("LeftArm").translation)

    def test_hip_height_and_feet(self):
        skeleton = build_skeleton(1.75, 1.6)
        self.assertAlmostEqual(skeleton.world_position("Hips")[1], 0.543 * 1.75, delta=1e-5)
        self.assertGreater(skeleton.world_position("LeftFoot")[1], 0.0)
        self.assertLess(skeleton.world_position("LeftFoot")[1], skeleton.world_position("LeftLeg")[1])

    def test_arms_are_mirrored(self):
        skeleton = build_skeleton()
        left = skeleton.world_position("LeftHand")
        right = skeleton.world_position("RightHand")
        self.assertGreater(left[0], 0.0)
        np.testing.assert_allclose(right, left * [-1.0, 1.0, 1.0], atol=1e-6)


class TestSkeletonValidation(unittest.TestCase):
    def test_duplicate_names(self):
        with self.assertRaises(ValueError):
            Skeleton([Bone("Hips"), Bone("Hips", "Hips")])

    def test_unknown_parent(self):
        with self.assertRaises(ValueError):
            Skeleton([Bone("Hips"), Bone("Spine", "Pelvis")])

    def test_two_roots(self):
        with self.assertRaises(ValueError):
            Skeleton([Bone("Hips"), Bone("Other")])

    def test_parent_declared_after_child(self):
        skeleton = Skeleton([Bone("Spine", "Hips", (0.0, 0.1, 0.0)), Bone("Hips", None, (0.0, 1.0, 0.0))])
        self.assertEqual(skeleton.root, 1)
        self.assertEqual(skeleton.order, (1, 0))
        np.testing.assert_allclose(skeleton.world_position("Spine"), [0.0, 1.1, 0.0], atol=1e-6)


class TestPose(unittest.TestCase):
    def setUp(self):
        self.skeleton = build_skeleton()
        self.pose = Pose(self.skeleton)

    def test_bind_pose_skinning_is_identity(self):
        self.pose.update()
        for m in self.pose.final:
            np.testing.assert_allclose(m, np.eye(4), atol=1e-5)

    def test_sample_slerps_rotation(self):
        z = (0.0, 0.0, 1.0)
        clip = AnimationClip(
            "raise",
            [Track("LeftArm", "rotation", [0.0, 1.0], [quat_from_axis_angle(z, 0.0), quat_from_axis_angle(z, 1.0)])],
        )
        self.pose.sample(clip, 0.5)
        i = self.skeleton.index_of("LeftArm")
        np.testing.assert_allclose(self.pose.rotation[i], quat_from_axis_angle(z, 0.5), atol=1e-5)

    def test_sample_ignores_unknown_bones(self):
        clip = AnimationClip("x", [Track("Tail", "position", [0.0], [[1.0, 2.0, 3.0]])])
        self.pose.sample(clip, 0.0)
        np.testing.assert_array_equal(self.pose.translation[0], self.skeleton.bones[0].translation)

    def test_t_pose_rolls_arms_opposite_ways(self):
        self.pose.apply_t_pose(0.87)
        left = self.pose.rotation[self.skeleton.index_of("LeftArm")]
        right = self.pose.rotation[self.skeleton.index_of("RightArm")]
        np.testing.assert_allclose(left, quat_from_axis_angle((0, 0, 1), 0.87), atol=1e-6)
        np.testing.assert_allclose(right, quat_from_axis_angle((0, 0, 1), -0.87), atol=1e-6)

    def test_body_modifiers(self):
        self.pose.apply_modifiers(BodyModifiers(height=1.1, width=0.9, head_size=1.2, arm_thickness=1.5))
        np.testing.assert_allclose(self.pose.scale[self.skeleton.index_of("Head")], [1.2, 1.2, 1.2])
        np.testing.assert_allclose(self.pose.scale[self.skeleton.index_of("LeftForeArm")], [1.5, 1.0, 1.5])
        np.testing.assert_allclose(self.pose.model_scale, [0.9, 1.1, 0.9])
        np.testing.assert_allclose(self.pose.scale[self.skeleton.root], [1.0, 1.0, 1.0])

    def test_height_scales_about_the_ground(self):
        self.pose.apply_modifiers(BodyModifiers(height=1.2))
        self.pose.update()
        for name in ("LeftFoot", "RightFoot", "Hips", "Head"):
            i = self.skeleton.index_of(name)
            bind_y = self.skeleton.world_position(name)[1]
            self.assertGreaterEqual(float(self.pose.world[i][1, 3]), 0.0)
            self.assertAlmostEqual(float(self.pose.world[i][1, 3]), 1.2 * bind_y, delta=1e-5)

    def test_reset_pose(self):
        self.pose.apply_t_pose()
        self.pose.apply_modifiers(BodyModifiers(height=1.3))
        self.pose.reset_pose()
        np.testing.assert_allclose(self.pose.rotation[:, 3], 1.0)
        np.testing.assert_allclose(self.pose.model_scale, 1.0)


class TestRootTransform(unittest.TestCase):
    def setUp(self):
        # centimeter bones under a 0.01 armature
        self.bones = [
            Bone("Hips", None, (0.0, 100.0, 0.0)),
            Bone("LeftArm", "Hips", (20.0, 38.0, 0.0)),
            Bone("LeftForeArm", "LeftArm", (30.0, 0.0, 0.0)),
        ]
        self.armature = np.diag([0.01, 0.01, 0.01, 1.0])

    def test_bind_world_includes_root_transform(self):
        skeleton = Skeleton(self.bones, root_transform=self.armature)
        np.testing.assert_allclose(skeleton.world_position("LeftForeArm"), [0.5, 1.38, 0.0], atol=1e-6)

        pose = Pose(skeleton)
        pose.update()
        for m in pose.final:
            np.testing.assert_allclose(m, np.eye(4), atol=1e-5)

    def test_explicit_inverse_bind_is_kept(self):
        reference = Skeleton(self.bones, root_transform=self.armature)
        skeleton = Skeleton(self.bones, root_transform=self.armature, inverse_bind=reference.inverse_bind)
        for a, b in zip(skeleton.inverse_bind, reference.inverse_bind):
            np.testing.assert_allclose(a, b)

        with self.assertRaises(ValueError):
            Skeleton(self.bones, inverse_bind=reference.inverse_bind[:2])

    def test_caller_matrix_not_frozen(self):
        Skeleton(self.bones, root_transform=self.armature)
        self.armature[0, 0] = 0.02


if __name__ == "__main__":
    unittest.main()
