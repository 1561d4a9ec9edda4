import io
import unittest

import numpy as np
from PIL import Image

from rigkit.errors import TextureDecodeError
from rigkit.gameobjects.material import Material
from rigkit.gameobjects.texture import (
    data_uri_to_image,
    decode_image,
    fit_texture,
    image_to_data_uri,
    key_background,
    load_portrait,
)


def _png(image: Image.Image) -> bytes:
    buf = io.BytesIO()
    image.save(buf, format="PNG")
    return buf.getvalue()


class TestTexture(unittest.TestCase):
    def test_white_background_becomes_transparent(self):
        pixels = np.full((4, 4, 3), 255, dtype=np.uint8)
        pixels[1:3, 1:3] = (200, 120, 90)
        pixels[0, 0] = (250, 250, 230)  # one channel below the threshold
        keyed = key_background(Image.fromarray(pixels))

        alpha = np.array(keyed)[:, :, 3]
        self.assertEqual(keyed.mode, "RGBA")
        self.assertEqual(alpha[3, 3], 0)
        self.assertEqual(alpha[1, 1], 255)
        self.assertEqual(alpha[0, 0], 255)

    def test_decode_png_bytes(self):
        image = decode_image(_png(Image.new("RGB", (16, 8), (10, 20, 30))))
        self.assertEqual(image.size, (16, 8))
        self.assertEqual(image.mode, "RGBA")

    def test_corrupt_bytes_raise(self):
        with self.assertRaises(TextureDecodeError):
            decode_image(b"definitely not an image")
        with self.assertRaises(TextureDecodeError):
            load_portrait(_png(Image.new("RGB", (64, 64), (1, 2, 3)))[:40])

    def test_fit_texture_keeps_aspect(self):
        fitted = fit_texture(Image.new("RGBA", (2048, 1024)), 1024)
        self.assertEqual(fitted.size, (1024, 512))
        small = Image.new("RGBA", (64, 32))
        self.assertIs(fit_texture(small, 1024), small)

    def test_data_uri(self):
        image = Image.new("RGBA", (3, 5), (255, 0, 0, 255))
        uri = image_to_data_uri(image)
        self.assertTrue(uri.startswith("data:image/png;base64,"))
        back = data_uri_to_image(uri)
        self.assertEqual(back.size, (3, 5))
        self.assertEqual(back.getpixel((0, 0)), (255, 0, 0, 255))

    def test_bad_data_uri(self):
        with self.assertRaises(TextureDecodeError):
            data_uri_to_image("http://example.com/a.png")
        with self.assertRaises(TextureDecodeError):
            data_uri_to_image("data:image/png;base64,@@@")


class TestMaterial(unittest.TestCase):
    def test_defaults(self):
        material = Material()
        self.assertEqual(material.roughness, 0.7)
        self.assertEqual(material.metalness, 0.1)
        self.assertTrue(material.double_sided)
        self.assertTrue(material.skinning)

    def test_swap_texture(self):
        first = Image.new("RGBA", (2, 2))
        second = Image.new("RGBA", (4, 4))
        material = Material(texture=first, color=(0.5, 0.5, 0.5, 1.0))
        self.assertIs(material.swap_texture(second), first)
        self.assertIs(material.texture, second)
        self.assertEqual(material.color, (1.0, 1.0, 1.0, 1.0))


if __name__ == "__main__":
    unittest.main()
