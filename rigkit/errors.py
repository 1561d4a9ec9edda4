class RigkitError(Exception):
    """Base class for all rigkit errors."""


class GeometryError(RigkitError, ValueError):
    """A geometry is missing attributes or has inconsistent buffers."""


class TextureDecodeError(RigkitError, ValueError):
    """The portrait / texture bytes could not be decoded."""


class ContainerError(RigkitError, ValueError):
    """The bytes are not a usable GLB container."""


class ExportError(RigkitError, RuntimeError):
    """Serializing a character to GLB failed. Nothing was written."""
