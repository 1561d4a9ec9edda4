import asyncio
import logging
from typing import Awaitable, Callable

from PIL import Image

from rigkit.assets.animations.clip import AnimationClip, clip_name_from_asset
from rigkit.assets.animations.retarget import retarget_to_skeleton
from rigkit.assets.animations.skeleton import Pose, Skeleton
from rigkit.config import DEFAULT_ARM_SPAN, DEFAULT_HEIGHT, BodyModifiers
from rigkit.errors import ContainerError, RigkitError
from rigkit.gameobjects.loader.glb_loader import GLBLoader
from rigkit.gameobjects.loader.glb_writer import serialize_glb, write_glb
from rigkit.gameobjects.material import Material
from rigkit.gameobjects.mesh import SkinnedMesh
from rigkit.gameobjects.texture import data_uri_to_image, fit_texture, image_to_data_uri
from rigkit.synthesis import build_character

_log = logging.getLogger("rigkit.session")

Fetch = Callable[[], Awaitable[bytes]]
TextureHook = Callable[[str], None]


class CharacterSession:
    """
    One bound character plus the clips retargeted onto it.

    - Every animation asset is retargeted once per character
    - Selecting a clip never recomputes anything
    - Loads still in flight when the character changes are discarded
    """

    def __init__(self):
        self.skeleton: Skeleton | None = None
        self.mesh: SkinnedMesh | None = None
        self.material: Material | None = None
        self.model_height = 0.0

        # asset id -> retargeted clip, in load order
        self.clips: dict[str, AnimationClip] = {}
        self.active: str | None = None

        self._generation = 0
        # (generation, asset id) -> load in flight
        self._pending: dict[tuple[int, str], asyncio.Future] = {}
        # raise the arms of A-pose rigs when posing
        self.force_t_pose = False
        self._texture_hooks: list[TextureHook] = []

    # -------------------------------------------------
    # Character
    # -------------------------------------------------

    @property
    def generation(self) -> int:
        return self._generation

    def set_character(self, skeleton: Skeleton, mesh: SkinnedMesh, material: Material | None = None,
                      texture: Image.Image | None = None):
        """
        Bind a new character. Drops every clip of the previous one and
        invalidates loads still in flight.
        """
        self._generation += 1
        self.skeleton = skeleton
        self.mesh = mesh
        self.material = material or mesh.material
        self.model_height = mesh.height()

        self.clips.clear()
        self.active = None

        _log.info("[Session] character bound: %d bones, %d vertices, height=%.3f (generation %d)",
                  skeleton.count, mesh.vertex_count, self.model_height, self._generation)

        if texture is None and self.material is not None:
            texture = self.material.texture
        if texture is not None:
            self._notify_texture(texture)

    def load_character(self, data) -> list[AnimationClip]:
        """
        Bind a character from a GLB blob (or path). Returns the clips the
        file carries, which are registered as-is.
        """
        loader = GLBLoader(data)
        skeleton = loader.load_skeleton()
        mesh = loader.load_skinned_mesh(skeleton)
        self.set_character(skeleton, mesh, mesh.material, loader.largest_basecolor_texture())

        native = loader.load_animations()
        for clip in native:
            self.clips[clip.name] = clip
        if native:
            self.active = native[0].name
        return native

    async def synthesize(self, fetch: Fetch, height: float = DEFAULT_HEIGHT,
                         arm_span: float = DEFAULT_ARM_SPAN):
        data = await fetch()
        skeleton, mesh, material = build_character(data, height, arm_span)
        self.set_character(skeleton, mesh, material)

    # -------------------------------------------------
    # Animations
    # -------------------------------------------------

    async def load_animation(self, asset_id: str, name: str | None, fetch: Fetch) -> AnimationClip | None:
        """
        Fetch an animation asset and retarget its first clip onto the bound
        character. Concurrent calls for the same asset share one load.

        :param asset_id: key the clip is stored under
        :param name: display/file name, extension is stripped
        :param fetch: coroutine function returning the GLB bytes
        :return: the retargeted clip, or None when the character changed
                 while the asset was loading
        """
        if self.skeleton is None:
            raise RigkitError("No character bound")

        if asset_id in self.clips:
            return self.clips[asset_id]

        generation = self._generation
        key = (generation, asset_id)
        task = self._pending.get(key)
        if task is None:
            task = asyncio.ensure_future(self._load_animation(generation, asset_id, name, fetch))
            self._pending[key] = task
            task.add_done_callback(lambda _: self._pending.pop(key, None))
        return await task

    async def _load_animation(self, generation: int, asset_id: str, name: str | None,
                              fetch: Fetch) -> AnimationClip | None:
        data = await fetch()

        if generation != self._generation:
            _log.info("[Session] discarding %s: character changed while it was loading", asset_id)
            return None

        sources = GLBLoader(data).load_animations()
        if not sources:
            raise ContainerError(f"Animation asset {asset_id} contains no clips")

        clip = retarget_to_skeleton(
            sources[0], self.skeleton, self.model_height, name=clip_name_from_asset(name, asset_id)
        )
        self.clips[asset_id] = clip
        if self.active is None:
            self.active = asset_id
        return clip

    def unload_animation(self, asset_id: str):
        self.clips.pop(asset_id, None)
        if self.active == asset_id:
            self.active = next(iter(self.clips), None)

    def select_clip(self, asset_id: str) -> AnimationClip:
        if asset_id not in self.clips:
            raise KeyError(f"Unknown animation: {asset_id}")
        self.active = asset_id
        return self.clips[asset_id]

    @property
    def active_clip(self) -> AnimationClip | None:
        return self.clips.get(self.active) if self.active is not None else None

    def pose_at(self, time: float, modifiers: BodyModifiers | None = None,
                force_t_pose: bool | None = None) -> Pose:
        """
        Pose of the active clip at `time` (wrapped to the clip duration).
        `force_t_pose` overrides the session flag for this call.
        """
        if self.skeleton is None:
            raise RigkitError("No character bound")

        pose = Pose(self.skeleton)
        clip = self.active_clip
        if clip is not None:
            t = time % clip.duration if clip.duration > 0.0 else 0.0
            pose.sample(clip, t)
        if force_t_pose is None:
            force_t_pose = self.force_t_pose
        if force_t_pose:
            pose.apply_t_pose()
        if modifiers is not None:
            pose.apply_modifiers(modifiers)
        pose.update()
        return pose

    # -------------------------------------------------
    # Texture hand-off
    # -------------------------------------------------

    def on_texture_loaded(self, hook: TextureHook) -> TextureHook:
        self._texture_hooks.append(hook)
        return hook

    def _notify_texture(self, texture: Image.Image):
        if not self._texture_hooks:
            return
        uri = image_to_data_uri(fit_texture(texture))
        for hook in self._texture_hooks:
            hook(uri)

    def update_texture(self, data_uri: str):
        """
        Swap a repainted texture into the bound material.
        """
        if self.material is None:
            raise RigkitError("No material bound")
        image = data_uri_to_image(data_uri)
        self.material.swap_texture(image)
        _log.info("[Session] texture updated (%dx%d)", image.width, image.height)

    # -------------------------------------------------
    # Export
    # -------------------------------------------------

    def export(self) -> bytes:
        if self.skeleton is None or self.mesh is None:
            raise RigkitError("No character bound")
        return serialize_glb(self.skeleton, self.mesh, self.material, list(self.clips.values()))

    def export_to(self, path: str) -> str:
        return write_glb(path, self.export())
