from PIL import Image


class Material:
    def __init__(self, texture: Image.Image | None = None, color=(1.0, 1.0, 1.0, 1.0),
                 roughness=0.7, metalness=0.1, double_sided=True, skinning=True,
                 name="Humanoid_Material"):
        """
        texture      : base-color map (RGBA) or None
        color        : base-color factor (rgba)
        double_sided : back faces reuse the front-facing texture
        skinning     : material is used on a skinned mesh
        """
        self.name = name
        self.texture = texture
        self.color = tuple(color)
        self.roughness = roughness
        self.metalness = metalness
        self.double_sided = double_sided
        self.skinning = skinning

    def swap_texture(self, texture: Image.Image) -> Image.Image | None:
        """
        Replace the base-color map. Returns the previous one.
        """
        previous = self.texture
        self.texture = texture
        self.color = (1.0, 1.0, 1.0, 1.0)
        return previous
