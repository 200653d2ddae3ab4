import unittest
from PIL import Image
from sprite_atlas.texture import SpriteTexture, get_bounds
from sprite_atlas.utils import Bounds, EmptySpriteError, Padding
from tests.helpers import make_image


class TestBounds(unittest.TestCase):

    def test_content_box(self):
        img = make_image((10, 8), (2, 3, 5, 6))
        self.assertEqual(Bounds(2, 3, 4, 5), get_bounds(img))

    def test_single_pixel_at_corner(self):
        img = make_image((6, 6))
        img.putpixel((5, 5), (0, 0, 0, 1))
        self.assertEqual(Bounds(5, 5, 5, 5), get_bounds(img))

    def test_fully_transparent(self):
        self.assertIsNone(get_bounds(make_image((4, 4))))

    def test_color_under_zero_alpha_is_not_content(self):
        img = make_image((5, 5), (1, 1, 2, 2))
        img.putpixel((4, 4), (255, 255, 255, 0))
        self.assertEqual(Bounds(1, 1, 1, 1), get_bounds(img))


class TestSpriteTexture(unittest.TestCase):

    def test_trim_and_padding(self):
        texture = SpriteTexture(make_image((10, 8), (2, 3, 5, 6)))

        self.assertEqual((3, 3), (texture.width, texture.height))
        self.assertEqual(Padding(2, 3, 5, 2), texture.padding)
        self.assertEqual((3, 3), texture.image.size)

    def test_padding_reconstructs_source_size(self):
        for size, box in [
            ((10, 8), (2, 3, 5, 6)),
            ((1, 1), (0, 0, 1, 1)),
            ((7, 13), (0, 12, 7, 13)),
            ((9, 9), (4, 0, 5, 9)),
        ]:
            texture = SpriteTexture(make_image(size, box))
            p = texture.padding
            self.assertEqual(size[0], p.left + texture.width + p.right)
            self.assertEqual(size[1], p.top + texture.height + p.bottom)
            self.assertEqual(size, tuple(texture.source_size))

    def test_empty_image_is_fatal(self):
        with self.assertRaises(EmptySpriteError):
            SpriteTexture(make_image((4, 4)), name="empty.png")

    def test_rgb_image_is_converted(self):
        texture = SpriteTexture(Image.new("RGB", (3, 2), (10, 20, 30)))

        self.assertEqual("RGBA", texture.image.mode)
        self.assertEqual((3, 2), (texture.width, texture.height))
        self.assertEqual(Padding(0, 0, 0, 0), texture.padding)

    def test_identical_sources_are_equal(self):
        a = SpriteTexture(make_image((8, 8), (2, 2, 6, 6)))
        b = SpriteTexture(make_image((8, 8), (2, 2, 6, 6)))

        self.assertIsNot(a, b)
        self.assertTrue(a.equals(b))
        self.assertTrue(b.equals(a))
        self.assertEqual(a, b)
        self.assertEqual(hash(a), hash(b))

    def test_same_content_different_margins_are_equal(self):
        a = SpriteTexture(make_image((8, 8), (2, 2, 6, 6)))
        b = SpriteTexture(make_image((12, 5), (0, 1, 4, 5)))

        self.assertTrue(a.equals(b))
        self.assertNotEqual(a.padding, b.padding)

    def test_single_alpha_difference(self):
        img = make_image((8, 8), (2, 2, 6, 6))
        other = img.copy()
        other.putpixel((3, 3), (255, 0, 0, 254))

        a = SpriteTexture(img)
        b = SpriteTexture(other)

        self.assertFalse(a.equals(b))
        self.assertFalse(b.equals(a))

    def test_single_color_channel_difference(self):
        img = make_image((4, 4), (0, 0, 4, 4))
        other = img.copy()
        other.putpixel((0, 0), (255, 0, 1, 255))

        self.assertNotEqual(SpriteTexture(img), SpriteTexture(other))

    def test_different_dimensions(self):
        a = SpriteTexture(make_image((8, 8), (0, 0, 4, 2)))
        b = SpriteTexture(make_image((8, 8), (0, 0, 2, 4)))

        self.assertFalse(a.equals(b))

    def test_derived_data_is_memoized(self):
        texture = SpriteTexture(make_image((6, 6), (1, 1, 5, 5)))

        self.assertIs(texture.surface, texture.surface)
        self.assertIs(texture.encoded, texture.encoded)
        self.assertTrue(texture.encoded.startswith(b"\x89PNG"))
        self.assertEqual((4, 4), texture.surface.size)
        self.assertEqual((4, 4, 4), texture.pixels.shape)

    def test_comparison_does_not_mutate(self):
        img = make_image((6, 6), (1, 1, 5, 5))
        a = SpriteTexture(img)
        b = SpriteTexture(img.copy())
        before = a.image.tobytes()

        for _ in range(3):
            self.assertTrue(a.equals(b))

        self.assertEqual(before, a.image.tobytes())

    def test_not_equal_to_other_types(self):
        texture = SpriteTexture(make_image((2, 2), (0, 0, 2, 2)))
        self.assertNotEqual(texture, "texture")


if __name__ == "__main__":
    unittest.main()
