from typing import NamedTuple

import numpy as np

from rigkit.config import DEFAULT_ARM_SPAN, DEFAULT_HEIGHT, UV_INSET
from rigkit.gameobjects.mesh import Geometry


class WorldBounds(NamedTuple):
    """
    Front-view rectangle (X/Y) the portrait is framed to.
    """

    min_x: float
    max_x: float
    min_y: float
    max_y: float

    @property
    def width(self) -> float:
        return self.max_x - self.min_x

    @property
    def height(self) -> float:
        return self.max_y - self.min_y

    @classmethod
    def for_body(cls, height: float = DEFAULT_HEIGHT, arm_span: float = DEFAULT_ARM_SPAN) -> "WorldBounds":
        half_span = arm_span / 2.0
        return cls(-half_span * 0.9, half_span * 0.9, 0.0, height * 1.05)


def project_planar_uvs(geometry: Geometry, bounds: WorldBounds, inset=UV_INSET) -> Geometry:
    """
    Orthographic projection along Z: u from X, v from Y, clamped to the inset.
    Back faces get the same UVs as the front.
    """
    pos = geometry.get_attribute("position")
    lo, hi = inset

    u = (pos[:, 0] - bounds.min_x) / bounds.width
    v = (pos[:, 1] - bounds.min_y) / bounds.height
    uv = np.stack([np.clip(u, lo, hi), np.clip(v, lo, hi)], axis=1)

    geometry.set_attribute("uv", uv)
    return geometry
