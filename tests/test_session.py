import asyncio
import io
import unittest

import numpy as np
from PIL import Image

from rigkit.assets.animations.clip import AnimationClip, Track
from rigkit.assets.animations.skeleton import Bone, Skeleton
from rigkit.character import CharacterSession
from rigkit.errors import RigkitError, TextureDecodeError
from rigkit.gameobjects.animation.animation_utils import quat_from_axis_angle
from rigkit.gameobjects.assets.vertec import generate_box
from rigkit.gameobjects.loader.glb_loader import GLBLoader
from rigkit.gameobjects.loader.glb_writer import serialize_glb
from rigkit.gameobjects.mesh import SkinnedMesh, merge_geometries
from rigkit.gameobjects.player.mannequin.assembler import assemble_mannequin
from rigkit.gameobjects.player.mannequin.skeleton_builder import build_skeleton
from rigkit.gameobjects.texture import image_to_data_uri
from rigkit.synthesis import synthesize_from_portrait


def _png(size=64) -> bytes:
    pixels = np.full((size, size, 3), 250, dtype=np.uint8)
    pixels[size // 4:-size // 4, size // 3:-size // 3] = (90, 60, 40)
    buf = io.BytesIO()
    Image.fromarray(pixels).save(buf, format="PNG")
    return buf.getvalue()


def mixamo_asset() -> bytes:
    """A tiny mixamo-named rig carrying one clip, as downloaded animation assets are."""
    skeleton = Skeleton([
        Bone("mixamorig:Hips", None, (0.0, 95.0, 0.0)),
        Bone("mixamorig:Spine", "mixamorig:Hips", (0.0, 10.0, 0.0)),
        Bone("mixamorig:LeftArm", "mixamorig:Spine", (15.0, 30.0, 0.0)),
    ])
    mesh = SkinnedMesh(merge_geometries([generate_box(0.1, 0.1, 0.1).to_non_indexed()]), skeleton)

    y = (0.0, 1.0, 0.0)
    clip = AnimationClip(
        "mixamo.com",
        [
            Track("mixamorig:Hips", "position", [0.0, 1.0], [[5.0, 95.0, 2.0], [8.0, 99.0, 4.0]]),
            Track("mixamorig:Hips", "rotation", [0.0, 1.0], [quat_from_axis_angle(y, 0.2), quat_from_axis_angle(y, 0.6)]),
            Track("mixamorig:LeftArm", "rotation", [0.0, 1.0], [quat_from_axis_angle(y, 0.0), quat_from_axis_angle(y, 0.3)]),
            Track("mixamorig:LeftArm", "scale", [0.0, 1.0], np.ones((2, 3))),
        ],
    )
    return serialize_glb(skeleton, mesh, clips=[clip])


def _fetcher(data: bytes):
    async def fetch():
        await asyncio.sleep(0)
        return data
    return fetch


class TestSession(unittest.TestCase):
    def setUp(self):
        self.session = CharacterSession()
        self.asset = mixamo_asset()

    def _synthesize(self):
        asyncio.run(self.session.synthesize(_fetcher(_png())))

    def test_synthesize_binds_character(self):
        self._synthesize()
        self.assertEqual(self.session.skeleton.count, 20)
        self.assertGreater(self.session.model_height, 1.5)
        self.assertEqual(self.session.generation, 1)

    def test_bad_portrait_binds_nothing(self):
        with self.assertRaises(TextureDecodeError):
            asyncio.run(self.session.synthesize(_fetcher(b"not a png")))
        self.assertIsNone(self.session.skeleton)

    def test_load_animation_retargets_once(self):
        self._synthesize()
        clip = asyncio.run(self.session.load_animation("42", "Walking.fbx", _fetcher(self.asset)))

        self.assertEqual(clip.name, "Walking")
        self.assertEqual(sorted(clip.track_names()), ["Hips.position", "Hips.rotation", "LeftArm.rotation"])
        hips = next(t for t in clip.tracks if t.name == "Hips.position")
        np.testing.assert_allclose(hips.values, [[0.0, 0.95, 0.0], [0.0, 0.99, 0.0]], atol=1e-6)

        calls = []

        async def counting_fetch():
            calls.append(1)
            return self.asset

        again = asyncio.run(self.session.load_animation("42", "Walking.fbx", counting_fetch))
        self.assertIs(again, clip)
        self.assertEqual(calls, [])
        self.assertEqual(self.session.active, "42")

    def test_unnamed_asset(self):
        self._synthesize()
        clip = asyncio.run(self.session.load_animation("7", None, _fetcher(self.asset)))
        self.assertEqual(clip.name, "Anim_7")

    def test_select_and_unload(self):
        self._synthesize()
        asyncio.run(self.session.load_animation("a", "a.glb", _fetcher(self.asset)))
        asyncio.run(self.session.load_animation("b", "b.glb", _fetcher(self.asset)))

        self.assertEqual(self.session.active, "a")
        self.assertEqual(self.session.select_clip("b").name, "b")
        self.assertEqual(self.session.active_clip.name, "b")

        self.session.unload_animation("b")
        self.assertEqual(self.session.active, "a")
        with self.assertRaises(KeyError):
            self.session.select_clip("b")

    def test_stale_load_is_discarded(self):
        self._synthesize()
        replacement = build_skeleton(2.0, 1.9)
        replacement_mesh = assemble_mannequin(replacement, None, 2.0, 1.9)

        async def scenario():
            gate = asyncio.Event()

            async def slow_fetch():
                await gate.wait()
                return self.asset

            task = asyncio.create_task(self.session.load_animation("walk", "walk.glb", slow_fetch))
            await asyncio.sleep(0)
            self.session.set_character(replacement, replacement_mesh)
            gate.set()
            return await task

        with self.assertLogs("rigkit.session", level="INFO") as logs:
            result = asyncio.run(scenario())

        self.assertIsNone(result)
        self.assertEqual(self.session.clips, {})
        self.assertIs(self.session.skeleton, replacement)
        self.assertTrue(any("discarding walk" in line for line in logs.output))

    def test_new_character_clears_clips(self):
        self._synthesize()
        asyncio.run(self.session.load_animation("a", "a.glb", _fetcher(self.asset)))
        self._synthesize()
        self.assertEqual(self.session.clips, {})
        self.assertIsNone(self.session.active_clip)

    def test_load_without_character(self):
        with self.assertRaises(RigkitError):
            asyncio.run(self.session.load_animation("a", "a.glb", _fetcher(self.asset)))

    def test_texture_hooks(self):
        received = []
        self.session.on_texture_loaded(received.append)
        self._synthesize()

        self.assertEqual(len(received), 1)
        self.assertTrue(received[0].startswith("data:image/png;base64,"))

        self.session.update_texture(image_to_data_uri(Image.new("RGBA", (8, 8), (0, 255, 0, 255))))
        self.assertEqual(self.session.material.texture.size, (8, 8))

    def test_export_bakes_clips(self):
        self._synthesize()
        asyncio.run(self.session.load_animation("w", "walk.glb", _fetcher(self.asset)))

        loader = GLBLoader(self.session.export())
        self.assertEqual([c.name for c in loader.load_animations()], ["walk"])
        self.assertEqual(loader.load_skeleton().count, 20)

    def test_load_character_from_glb(self):
        blob = asyncio.run(synthesize_from_portrait(_fetcher(_png())))
        native = self.session.load_character(blob)
        self.assertEqual(native, [])
        self.assertEqual(self.session.skeleton.count, 20)

        clip = asyncio.run(self.session.load_animation("w", "walk.glb", _fetcher(self.asset)))
        self.assertIn("LeftArm.rotation", clip.track_names())

    def test_pose_at_wraps_time(self):
        self._synthesize()
        asyncio.run(self.session.load_animation("w", "walk.glb", _fetcher(self.asset)))
        a = self.session.pose_at(0.25)
        b = self.session.pose_at(1.25)
        np.testing.assert_allclose(a.rotation, b.rotation, atol=1e-6)

    def test_concurrent_loads_share_one_fetch(self):
        self._synthesize()
        calls = []

        async def counting_fetch():
            calls.append(1)
            await asyncio.sleep(0)
            return self.asset

        async def scenario():
            return await asyncio.gather(
                self.session.load_animation("42", "Walking.fbx", counting_fetch),
                self.session.load_animation("42", "Walking.fbx", counting_fetch),
            )

        first, second = asyncio.run(scenario())
        self.assertEqual(len(calls), 1)
        self.assertIs(first, second)
        self.assertIs(self.session.clips["42"], first)

    def test_forced_t_pose(self):
        self._synthesize()
        left = self.session.skeleton.index_of("LeftArm")
        raised = quat_from_axis_angle((0.0, 0.0, 1.0), 0.87)

        np.testing.assert_allclose(self.session.pose_at(0.0, force_t_pose=True).rotation[left], raised, atol=1e-6)
        np.testing.assert_allclose(self.session.pose_at(0.0).rotation[left], [0.0, 0.0, 0.0, 1.0], atol=1e-6)

        self.session.force_t_pose = True
        np.testing.assert_allclose(self.session.pose_at(0.0).rotation[left], raised, atol=1e-6)
        np.testing.assert_allclose(self.session.pose_at(0.0, force_t_pose=False).rotation[left],
                                   [0.0, 0.0, 0.0, 1.0], atol=1e-6)


if __name__ == "__main__":
    unittest.main()
