# tests/test_cli.py
import subprocess
import sys
from pathlib import Path
from PIL import Image, ImageDraw

import extract_cquant_meta
from cquant import file_utils

ROOT = Path(__file__).resolve().parent.parent
CLI = str(ROOT / "cquantize.py")


def create_dummy_image(path: Path, background=(150, 120, 200)):
    img = Image.new("RGB", (64, 64), color=background)
    draw = ImageDraw.Draw(img)
    draw.rectangle([(10, 10), (30, 30)], fill=(200, 50, 50))
    draw.ellipse([(25, 25), (50, 50)], fill=(50, 200, 50))
    img.save(path)


def run_cli(*args):
    return subprocess.run([sys.executable, CLI, *args], capture_output=True, text=True, cwd=ROOT)


def test_image_command_writes_outputs(tmp_path):
    input_image = tmp_path / "dummy_input.png"
    create_dummy_image(input_image)
    output_image = tmp_path / "output" / "quantized.png"

    result = run_cli("image", str(input_image), str(output_image), "--num-colors", "3")

    assert result.returncode == 0, f"CLI failed: {result.stderr}"
    assert output_image.exists()
    assert (tmp_path / "output" / "quantized-legend.png").exists()
    assert "Done." in result.stdout

    metadata = file_utils.read_png_metadata(output_image)
    assert metadata["NumColors"] == "3"
    assert metadata["SourceImage"] == str(input_image.resolve())


def test_image_command_refuses_to_overwrite(tmp_path):
    input_image = tmp_path / "in.png"
    create_dummy_image(input_image)
    output_image = tmp_path / "out.bmp"
    output_image.write_bytes(b"existing")

    result = run_cli("image", str(input_image), str(output_image), "--no-legend")

    assert result.returncode == 1
    assert "already exist" in result.stdout
    assert output_image.read_bytes() == b"existing"

    result = run_cli("image", str(input_image), str(output_image), "--no-legend", "-y", "--metric", "circular-hue")
    assert result.returncode == 0, f"CLI failed: {result.stderr}"
    with Image.open(output_image) as im:
        assert im.format == "BMP"


def test_batch_command_layout(tmp_path):
    input_dir = tmp_path / "inputs"
    input_dir.mkdir()
    create_dummy_image(input_dir / "one.png")
    create_dummy_image(input_dir / "two.bmp", background=(10, 10, 10))
    (input_dir / "readme.txt").write_text("not an image")
    output_dir = tmp_path / "outputs"

    result = run_cli("batch", str(input_dir), str(output_dir), "-n", "2", "-n", "3", "--run-id", "t1")

    assert result.returncode == 0, f"CLI failed: {result.stderr}"
    for stem in ("one", "two"):
        for n in (2, 3):
            expected = output_dir / "t1" / stem / "squared-euclidean" / f"n{n}" / f"t1_{stem}_squared-euclidean_n{n}.png"
            assert expected.exists(), f"Expected output file not found: {expected}"


def test_cli_help_output():
    result = run_cli("--help")
    assert result.returncode == 0
    assert "usage" in result.stdout.lower()
    assert "batch" in result.stdout


def test_extract_meta_prints_metadata(tmp_path, capsys):
    path = tmp_path / "meta.png"
    file_utils.save_quantized_image(Image.new("RGB", (2, 2)), path, additional_metadata={"Metric": "circular-hue"})

    assert extract_cquant_meta.print_png_metadata(path) == 0
    assert "Metric: circular-hue" in capsys.readouterr().out


def test_extract_meta_without_metadata(tmp_path, capsys):
    path = tmp_path / "plain.png"
    Image.new("RGB", (2, 2)).save(path)

    assert extract_cquant_meta.print_png_metadata(path) == 0
    assert "No cquant metadata found." in capsys.readouterr().out
