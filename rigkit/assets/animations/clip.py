import os
import numpy as np

# property name -> value width
PROPERTY_WIDTH = {
    "position": 3,
    "rotation": 4,
    "scale": 3,
}

# glTF channel paths and three.js track suffixes
PROPERTY_ALIASES = {
    "translation": "position",
    "quaternion": "rotation",
}


def parse_track_name(name: str) -> tuple[str, str] | None:
    """
    Split "<node>.<property>" at the last period.
    Returns None when the name carries no property.
    """
    period = name.rfind(".")
    if period <= 0:
        return None
    node = name[:period]
    prop = name[period + 1:]
    return node, PROPERTY_ALIASES.get(prop, prop)


def clip_name_from_asset(name: str | None, asset_id: str) -> str:
    if not name:
        return f"Anim_{asset_id}"
    return os.path.splitext(os.path.basename(name))[0]


class Track:
    def __init__(self, node: str, prop: str, times, values):
        """
        node   : target bone name
        prop   : "position", "rotation" or "scale"
        times  : (N,) strictly increasing seconds
        values : (N, 3) for position/scale, (N, 4) xyzw for rotation
        """
        prop = PROPERTY_ALIASES.get(prop, prop)
        if prop not in PROPERTY_WIDTH:
            raise ValueError(f"Unsupported track property: {prop}")

        times = np.asarray(times, dtype=np.float32).reshape(-1)
        values = np.asarray(values, dtype=np.float32).reshape(len(times), PROPERTY_WIDTH[prop])

        if len(times) > 1 and not np.all(np.diff(times) > 0.0):
            raise ValueError(f"Track {node}.{prop}: keyframe times must be strictly increasing")

        self.node = node
        self.property = prop
        self.times = times
        self.values = values

    @classmethod
    def from_name(cls, name: str, times, values) -> "Track":
        parsed = parse_track_name(name)
        if parsed is None:
            raise ValueError(f"Track name has no property: {name}")
        return cls(parsed[0], parsed[1], times, values)

    @property
    def name(self) -> str:
        return f"{self.node}.{self.property}"

    def clone(self, node: str | None = None) -> "Track":
        return Track(node or self.node, self.property, self.times.copy(), self.values.copy())

    def __repr__(self):
        return f"Track({self.name!r}, keys={len(self.times)})"


class AnimationClip:
    def __init__(self, name: str, tracks: list[Track], duration: float | None = None):
        """
        duration defaults to the last keyframe time across all tracks.
        """
        self.name = name
        self.tracks = list(tracks)
        if duration is None:
            duration = max((float(t.times[-1]) for t in self.tracks if len(t.times)), default=0.0)
        self.duration = float(duration)
        # False only for the unmatched-fallback clone produced by retargeting
        self.retargeted = True

    def clone(self, name: str | None = None) -> "AnimationClip":
        clip = AnimationClip(name or self.name, [t.clone() for t in self.tracks], self.duration)
        clip.retargeted = self.retargeted
        return clip

    def track_names(self) -> list[str]:
        return [t.name for t in self.tracks]

    def __repr__(self):
        return f"AnimationClip({self.name!r}, tracks={len(self.tracks)}, duration={self.duration:.3f})"
