import logging
from typing import Awaitable, Callable, Sequence

from PIL import Image

from rigkit.assets.animations.clip import AnimationClip
from rigkit.assets.animations.skeleton import Skeleton
from rigkit.config import DEFAULT_ARM_SPAN, DEFAULT_HEIGHT
from rigkit.gameobjects.loader.glb_writer import serialize_glb
from rigkit.gameobjects.material import Material
from rigkit.gameobjects.mesh import SkinnedMesh
from rigkit.gameobjects.player.mannequin.assembler import assemble_mannequin
from rigkit.gameobjects.player.mannequin.skeleton_builder import build_skeleton
from rigkit.gameobjects.texture import key_background, load_portrait

_log = logging.getLogger("rigkit.synthesis")

Fetch = Callable[[], Awaitable[bytes]]


def build_character(portrait, height: float = DEFAULT_HEIGHT,
                    arm_span: float = DEFAULT_ARM_SPAN) -> tuple[Skeleton, SkinnedMesh, Material]:
    """
    Portrait -> skeleton + textured skinned mesh.

    :param portrait: encoded image bytes, a path, or a decoded PIL image
    :param height: character height in meters
    :param arm_span: fingertip to fingertip in meters
    :return: (skeleton, mesh, material)
    """
    # decode first: a bad portrait must fail before any rig work
    if isinstance(portrait, Image.Image):
        texture = key_background(portrait)
    else:
        texture = load_portrait(portrait)

    skeleton = build_skeleton(height, arm_span)
    mesh = assemble_mannequin(skeleton, texture, height, arm_span)

    _log.info("[Rig] built %dx%d portrait character, height=%.2f arm_span=%.2f",
              texture.width, texture.height, height, arm_span)
    return skeleton, mesh, mesh.material


async def synthesize_from_portrait(fetch: Fetch, height: float = DEFAULT_HEIGHT,
                                   arm_span: float = DEFAULT_ARM_SPAN,
                                   clips: Sequence[AnimationClip] = ()) -> bytes:
    """
    Await the portrait bytes, then build and serialize the rig.
    """
    data = await fetch()
    skeleton, mesh, material = build_character(data, height, arm_span)
    return serialize_glb(skeleton, mesh, material, clips)
