import numpy as np
import pytest
from PIL import Image

from asciireel.charsets import SIMPLE_RAMP
from asciireel.config import ConversionOptions
from asciireel.converter import (
    convert_directory,
    convert_image_file,
    image_to_grid,
    image_to_text,
    map_luminance,
    ramp_indices,
    target_size,
)
from asciireel.errors import ConfigError, DecodeError


def make_options(columns=None, font_ratio=1.0, luminance=0, ascii_chars=SIMPLE_RAMP):
    return ConversionOptions(columns=columns, font_ratio=font_ratio, luminance=luminance, ascii_chars=ascii_chars)


def test_below_threshold_is_space():
    luma = np.arange(0, 256)
    for threshold in (1, 20, 128, 255):
        chars = map_luminance(luma, threshold, SIMPLE_RAMP.encode())
        assert all(c == ord(" ") for c in chars[:threshold])


def test_ramp_index_is_monotonic():
    luma = np.arange(0, 256)
    for threshold in (0, 20, 100, 254, 255):
        for ramp_length in (1, 2, 10, 70):
            indices = ramp_indices(luma, threshold, ramp_length)
            assert np.all(np.diff(indices) >= 0)
            assert indices.max() <= ramp_length - 1


def test_ramp_endpoints():
    indices = ramp_indices(np.array([0, 255]), 0, 10)
    assert indices.tolist() == [0, 9]
    # Threshold 255 leaves a range of one level
    assert ramp_indices(np.array([255]), 255, 10).tolist() == [0]


def test_primary_colours_map_to_expected_characters():
    img = Image.new("RGB", (4, 1))
    img.putpixel((0, 0), (0, 0, 0))
    img.putpixel((1, 0), (255, 0, 0))  # L=54
    img.putpixel((2, 0), (0, 255, 0))  # L=182
    img.putpixel((3, 0), (0, 0, 255))  # L=18
    grid = image_to_grid(img, make_options())
    assert grid.rows() == [" .* "]


def test_threshold_blanks_dim_pixels():
    img = Image.new("RGB", (3, 1))
    img.putpixel((0, 0), (255, 0, 0))
    img.putpixel((1, 0), (0, 255, 0))
    img.putpixel((2, 0), (0, 0, 255))
    grid = image_to_grid(img, make_options(luminance=20))
    assert grid.rows() == [".* "]


def test_solid_dark_image_is_blank():
    img = Image.new("RGB", (6, 3), (10, 10, 10))
    assert image_to_text(img, make_options(luminance=20)) == "      \n      \n      \n"


def test_target_size():
    assert target_size(100, 50, 40, 0.5) == (40, 10)
    # Rounds half up
    assert target_size(10, 5, None, 0.5) == (10, 3)
    # Never collapses to zero rows
    assert target_size(1000, 1, 10, 0.5) == (10, 1)


def test_output_dimensions_follow_columns_and_ratio():
    img = Image.new("RGB", (100, 50), (128, 128, 128))
    grid = image_to_grid(img, make_options(columns=40, font_ratio=0.5))
    assert (grid.width, grid.height) == (40, 10)
    assert len(grid.rows()) == 10
    assert all(len(row) == 40 for row in grid.rows())


def test_colours_are_the_pixel_colours():
    img = Image.new("RGB", (2, 2), (200, 30, 40))
    img.putpixel((1, 1), (1, 2, 3))
    grid = image_to_grid(img, make_options(), colors=True)
    colours = grid.color_array()
    assert colours.shape == (2, 2, 3)
    assert colours[0, 0].tolist() == [200, 30, 40]
    assert colours[1, 1].tolist() == [1, 2, 3]


def test_no_colours_by_default():
    grid = image_to_grid(Image.new("RGB", (2, 2)), make_options())
    assert grid.colors == b""


def test_accepts_file_path(tmp_path):
    path = tmp_path / "test.png"
    Image.new("RGB", (8, 4), (0, 255, 0)).save(path)
    grid = image_to_grid(path, make_options())
    assert (grid.width, grid.height) == (8, 4)


def test_accepts_greyscale_image():
    grid = image_to_grid(Image.new("L", (3, 3), 0), make_options())
    assert grid.rows() == ["   "] * 3


def test_undecodable_file_raises_decode_error(tmp_path):
    path = tmp_path / "broken.png"
    path.write_bytes(b"not an image")
    with pytest.raises(DecodeError, match="broken.png"):
        image_to_grid(path, make_options())


def test_oversized_image_raises_decode_error(tmp_path, monkeypatch):
    path = tmp_path / "huge.png"
    Image.new("RGB", (10, 10)).save(path)
    # Twice the limit is where Pillow refuses to open instead of warning
    monkeypatch.setattr(Image, "MAX_IMAGE_PIXELS", 10)
    with pytest.raises(DecodeError, match="huge.png"):
        image_to_grid(path, make_options())


def test_missing_file_raises_decode_error(tmp_path):
    with pytest.raises(DecodeError):
        image_to_grid(tmp_path / "missing.png", make_options())


@pytest.mark.parametrize("ramp", ["", "abcé", "ab\ncd"])
def test_invalid_ramp_rejected_at_configuration(ramp):
    with pytest.raises(ConfigError):
        make_options(ascii_chars=ramp)


def test_convert_image_file_writes_text_and_cframe(tmp_path):
    source = tmp_path / "frame_0001.png"
    Image.new("RGB", (5, 2), (0, 255, 0)).save(source)
    out = tmp_path / "out" / "frame_0001.txt"
    out.parent.mkdir()
    convert_image_file(source, out, make_options(), colors=True)
    assert out.read_text() == "*****\n*****\n"
    assert out.with_suffix(".cframe").exists()


def test_convert_directory(tmp_path):
    src = tmp_path / "src"
    src.mkdir()
    for i in range(1, 4):
        Image.new("RGB", (4, 2), (0, 255, 0)).save(src / f"frame_{i:04d}.png")
    (src / "notes.md").write_text("ignored")
    calls = []

    outputs = convert_directory(src, tmp_path / "dst", make_options(), progress=lambda c, t: calls.append((c, t)))

    assert [p.name for p in outputs] == ["frame_0001.txt", "frame_0002.txt", "frame_0003.txt"]
    assert sorted(calls) == [(1, 3), (2, 3), (3, 3)]
    assert all(p.read_text() == "****\n****\n" for p in outputs)
    assert len(list(src.glob("*.png"))) == 3


def test_convert_directory_removes_images_unless_kept(tmp_path):
    Image.new("RGB", (2, 2)).save(tmp_path / "frame_0001.png")
    convert_directory(tmp_path, tmp_path, make_options(), colors=True, keep_images=False)
    assert not list(tmp_path.glob("*.png"))
    assert (tmp_path / "frame_0001.txt").exists()
    assert (tmp_path / "frame_0001.cframe").exists()


def test_convert_directory_fails_on_bad_frame(tmp_path):
    Image.new("RGB", (2, 2)).save(tmp_path / "frame_0001.png")
    (tmp_path / "frame_0002.png").write_bytes(b"garbage")
    with pytest.raises(DecodeError, match="frame_0002.png"):
        convert_directory(tmp_path, tmp_path / "out", make_options())
