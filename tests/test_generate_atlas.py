import json
import tempfile
import unittest
from pathlib import Path
from unittest.mock import patch
from PIL import Image
from sprite_atlas import config
from sprite_atlas.generate_atlas import create_atlas, get_sprite_paths, load_textures
from sprite_atlas.manifest import decompress_keys, read_data
from sprite_atlas.utils import AtlasError, EmptySpriteError, ManifestError, SpriteDecodeError
from tests.helpers import make_image, save_image


class AtlasTestCase(unittest.TestCase):

    def setUp(self):
        self._tmp = tempfile.TemporaryDirectory()
        self.tmp = Path(self._tmp.name)
        self.input = self.tmp / "sprites"
        self.input.mkdir()
        self.output = self.tmp / "out" / "atlas"

    def tearDown(self):
        self._tmp.cleanup()

    def sprite(self, name, size=(8, 8), box=(2, 2, 6, 6), color=(255, 0, 0, 255)):
        return save_image(make_image(size, box, color), self.input / name)

    def manifest(self, data, name="manifest.json"):
        (self.input / name).write_text(json.dumps(data), encoding="utf-8")


class TestSources(AtlasTestCase):

    def test_sorted_relative_paths(self):
        self.sprite("b.png")
        self.sprite("a/z.png")
        self.sprite("a/c.png")
        (self.input / "notes.txt").write_text("x")

        self.assertEqual(
            ["a/c.png", "a/z.png", "b.png"],
            get_sprite_paths(self.input, ["**/*.png"]),
        )
        self.assertEqual(["b.png"], get_sprite_paths(self.input, "*.png"))
        self.assertEqual(
            ["a/c.png", "b.png"], get_sprite_paths(self.input, ["b.png", "a/c*", "b*"])
        )

    def test_load_order(self):
        for i in range(8):
            self.sprite(f"{7 - i}.png", color=(i, 0, 0, 255))

        paths = get_sprite_paths(self.input, ["*.png"])
        loaded = load_textures(self.input, paths, workers=4)

        self.assertEqual(paths, [p for p, _ in loaded])


class TestCreateAtlas(AtlasTestCase):

    def test_duplicates(self):
        self.sprite("a.png")
        self.sprite("b.png")
        self.sprite("c.png", box=(0, 0, 3, 5), color=(0, 255, 0, 255))

        result = create_atlas(self.input, self.output, "png")

        self.assertEqual(2, sum(len(p.rects) for p in result.pages))
        frames = result.document["frames"]
        self.assertEqual({"a.png", "b.png", "c.png"}, set(frames))
        self.assertEqual(frames["a.png"]["frame"], frames["b.png"]["frame"])
        self.assertEqual(frames["a.png"]["sourceSize"], frames["b.png"]["sourceSize"])
        self.assertEqual({"w": 8, "h": 8}, frames["c.png"]["sourceSize"])

        self.assertEqual([self.output.with_name("atlas.png")], result.page_files)
        self.assertTrue(result.page_files[0].exists())
        self.assertEqual(self.output.with_name("atlas.json"), result.data_file)
        with open(result.data_file, "r", encoding="utf-8") as f:
            self.assertEqual(result.document, json.load(f))
        self.assertEqual("atlas.png", result.document["meta"]["image"])
        self.assertEqual(1, result.document["meta"]["scale"])

    def test_multiple_pages(self):
        for i in range(4):
            self.sprite(f"{i}.png", size=(20, 20), box=(0, 0, 20, 20), color=(i * 50, 0, 0, 255))

        with patch.dict(config.setting["generate_atlas"], {"sizes": [32], "padding": 0}):
            result = create_atlas(self.input, self.output, "png")

        self.assertEqual(4, len(result.pages))
        self.assertEqual(
            [f"atlas_{i}.png" for i in range(4)], [f.name for f in result.page_files]
        )

        meta = result.document["meta"]
        pages = {p["id"]: p["image"] for p in meta["pages"]}
        self.assertEqual("atlas_0.png", meta["image"])

        for name, frame in result.document["frames"].items():
            self.assertEqual(pages[frame["page"]], frame["image"])
            self.assertTrue((self.output.parent / frame["image"]).exists())

        self.assertEqual(4, len({f["page"] for f in result.document["frames"].values()}))

    def test_anchor_rule(self):
        self.sprite("chars/player_idle.png")
        self.sprite("chars/player_run.png", color=(0, 0, 255, 255))
        self.sprite("chars/enemy.png", color=(0, 255, 0, 255))
        self.sprite("player.png", color=(9, 9, 9, 255))
        self.manifest(
            {
                "sources": ["**/*.png"],
                "frames": [{"path": "**/player*", "anchor": [0, 1]}],
            }
        )

        frames = create_atlas(self.input, self.output, "png").document["frames"]

        self.assertEqual({"x": 0, "y": 1}, frames["chars/player_idle.png"]["anchor"])
        self.assertEqual({"x": 0, "y": 1}, frames["chars/player_run.png"]["anchor"])
        self.assertEqual({"x": 0, "y": 1}, frames["player.png"]["anchor"])
        self.assertEqual({"x": 0.5, "y": 0.5}, frames["chars/enemy.png"]["anchor"])

    def test_animations(self):
        for i in range(3):
            self.sprite(f"walk/{i}.png", color=(0, i * 40, 0, 255))
        self.sprite("idle.png")
        self.manifest(
            {
                "sources": ["**/*.png"],
                "animations": {
                    "walk": {"frames": [{"path": "walk/*"}]},
                    "fly": {"frames": [{"path": "fly/*"}]},
                },
            }
        )

        with self.assertLogs("sprite_atlas", level="WARNING"):
            document = create_atlas(self.input, self.output, "png").document

        self.assertEqual(["walk/0.png", "walk/1.png", "walk/2.png"], document["animations"]["walk"])
        self.assertEqual([], document["animations"]["fly"])
        for frames in document["animations"].values():
            for name in frames:
                self.assertIn(name, document["frames"])

    def test_manifest_sources_filter(self):
        self.sprite("keep/a.png")
        self.sprite("skip/b.png", color=(0, 0, 255, 255))
        self.manifest({"sources": ["keep/**"]})

        document = create_atlas(self.input, self.output, "png").document

        self.assertEqual(["keep/a.png"], list(document["frames"]))

    def test_lua_manifest_and_data(self):
        self.sprite("hero.png")
        (self.input / "atlas.lua").write_text(
            'return { frames = { { path = "hero.png", anchor = { 1, 0 } } } }',
            encoding="utf-8",
        )

        result = create_atlas(
            self.input, self.output, "png", manifest="atlas.lua", data_format="lua"
        )

        self.assertEqual(self.output.with_name("atlas.lua"), result.data_file)
        data = read_data(result.data_file)
        self.assertEqual({"x": 1, "y": 0}, data["frames"]["hero.png"]["anchor"])
        self.assertEqual(result.document["frames"], data["frames"])

    def test_compress(self):
        self.sprite("a.png")
        self.sprite("b.png", color=(0, 0, 255, 255))
        self.manifest({"animations": {"all": {"frames": [{"path": "*"}]}}})

        plain = create_atlas(self.input, self.output, "png").document
        result = create_atlas(self.input, self.output, "png", compress=True)

        self.assertNotIn("a.png", result.document["frames"])
        self.assertTrue(result.key_map_file.exists())
        with open(result.key_map_file, "r", encoding="utf-8") as f:
            key_map = json.load(f)
        self.assertEqual(result.key_map, key_map)
        self.assertEqual(plain, decompress_keys(result.document, key_map))

    def test_white_rect(self):
        self.sprite("a.png", size=(4, 4), box=(0, 0, 4, 4))

        with patch.dict(
            config.setting["generate_atlas"],
            {"add_white_rect": True, "white_rect_size": [2, 2], "border": 0, "padding": 0},
        ):
            result = create_atlas(self.input, self.output, "png")

        frame = result.document["frames"]["a.png"]["frame"]
        self.assertNotEqual((0, 0), (frame["x"], frame["y"]))
        self.assertEqual({"x": 0, "y": 0, "w": 2, "h": 2}, result.document["meta"]["whiteRect"])
        with Image.open(result.page_files[0]) as img:
            self.assertEqual((255, 255, 255, 255), img.convert("RGBA").getpixel((1, 1)))


class TestErrors(AtlasTestCase):

    def assert_no_output(self):
        self.assertFalse(self.output.parent.exists() and any(self.output.parent.iterdir()))

    def test_unsupported_format(self):
        self.sprite("a.png")

        with self.assertRaises(TypeError):
            create_atlas(self.input, self.output, "gif")

        self.assert_no_output()

    def test_unsupported_data_format(self):
        self.sprite("a.png")

        with self.assertRaises(TypeError):
            create_atlas(self.input, self.output, "png", data_format="xml")

    def test_empty_sprite(self):
        self.sprite("a.png")
        self.sprite("empty.png", box=None)

        with self.assertRaises(EmptySpriteError):
            create_atlas(self.input, self.output, "png")

        self.assert_no_output()

    def test_decode_failure(self):
        self.sprite("a.png")
        (self.input / "broken.png").write_bytes(b"not an image")

        with self.assertRaises(SpriteDecodeError):
            create_atlas(self.input, self.output, "png")

        self.assert_no_output()

    def test_broken_manifest(self):
        self.sprite("a.png")
        (self.input / "manifest.json").write_text("{", encoding="utf-8")

        with self.assertRaises(ManifestError):
            create_atlas(self.input, self.output, "png")

    def test_missing_explicit_manifest(self):
        self.sprite("a.png")

        with self.assertRaises(ManifestError):
            create_atlas(self.input, self.output, "png", manifest="other.json")

    def test_no_sprites(self):
        with self.assertRaises(AtlasError):
            create_atlas(self.input, self.output, "png")

    def test_missing_input(self):
        with self.assertRaises(AtlasError):
            create_atlas(self.tmp / "missing", self.output, "png")


if __name__ == "__main__":
    unittest.main()
