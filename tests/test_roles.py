import unittest

from rigkit.assets.animations.roles import Role, RoleClassifier, identify_bone_role
from rigkit.gameobjects.player.mannequin.skeleton_builder import build_skeleton


class TestRoleClassifier(unittest.TestCase):
    def test_forearm_and_arm_are_different_roles(self):
        self.assertEqual(identify_bone_role("mixamorig:LeftForeArm"), Role.LEFT_FOREARM)
        self.assertEqual(identify_bone_role("mixamorig:LeftArm"), Role.LEFT_ARM)

    def test_classification_is_repeatable(self):
        for name in ("mixamorig:Hips", "Bip001 L UpperArm", "weird_bone", ""):
            self.assertEqual(identify_bone_role(name), identify_bone_role(name))

    def test_case_insensitive(self):
        self.assertEqual(identify_bone_role("HIPS"), Role.HIPS)
        self.assertEqual(identify_bone_role("leftupleg"), Role.LEFT_UPLEG)

    def test_biped_names(self):
        expected = {
            "Bip001 Pelvis": Role.HIPS,
            "Bip001 Spine1": Role.SPINE1,
            "Bip001 L Clavicle": Role.LEFT_SHOULDER,
            "Bip001 L UpperArm": Role.LEFT_ARM,
            "Bip001 L Forearm": Role.LEFT_FOREARM,
            "Bip001 R Hand": Role.RIGHT_HAND,
            "Bip001 L Thigh": Role.LEFT_UPLEG,
            "Bip001 L Calf": Role.LEFT_LEG,
            "Bip001 R Foot": Role.RIGHT_FOOT,
        }
        for name, role in expected.items():
            self.assertEqual(identify_bone_role(name), role, name)

    def test_spine_chain_specific_first(self):
        self.assertEqual(identify_bone_role("Spine"), Role.SPINE)
        self.assertEqual(identify_bone_role("Spine1"), Role.SPINE1)
        self.assertEqual(identify_bone_role("Spine2"), Role.SPINE2)

    def test_unknown_name(self):
        self.assertIsNone(identify_bone_role("Tentacle01"))

    def test_every_builder_bone_gets_its_own_role(self):
        skeleton = build_skeleton()
        for name in skeleton.names:
            self.assertEqual(identify_bone_role(name).value, name)

    def test_role_map_first_bone_wins(self):
        classifier = RoleClassifier()
        mapping = classifier.role_map(["Hips", "Pelvis", "LeftArm"])
        self.assertEqual(mapping[Role.HIPS], "Hips")
        self.assertEqual(mapping[Role.LEFT_ARM], "LeftArm")

    def test_injected_table(self):
        classifier = RoleClassifier([(Role.HEAD, [r"skull"])])
        self.assertEqual(classifier.classify("Skull_01"), Role.HEAD)
        self.assertIsNone(classifier.classify("Head"))
        self.assertEqual(classifier.roles, (Role.HEAD,))


if __name__ == "__main__":
    unittest.main()
