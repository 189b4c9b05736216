import logging
import sys
from pathlib import Path
from typing import List, Optional

import rich.traceback
import typer
from PIL import UnidentifiedImageError
from rich.logging import RichHandler

from cquant import file_utils, legend
from cquant.cluster import DEFAULT_MAX_ITERATIONS
from cquant.errors import QuantizationError
from cquant.metrics import MetricName
from cquant.palette_tools import apply_color_map
from cquant.quantize import ColorQuantizer, DEFAULT_NUM_COLORS

app = typer.Typer(help="Reduce images to a small palette with farthest-point seeded k-means.")

BATCH_DEFAULT_NUM_COLORS = [2, 4, 8, 16]


def configure_logging(verbose: bool) -> None:
    logging.basicConfig(
        level=logging.INFO if verbose else logging.WARNING,
        format="%(message)s",
        handlers=[RichHandler(show_path=False, rich_tracebacks=True)],
        force=True,
    )


def load_quantizer(input_path: Path, metric: MetricName, max_iterations: int) -> ColorQuantizer:
    try:
        return ColorQuantizer.from_file(input_path, metric=metric, max_iterations=max_iterations)
    except (FileNotFoundError, UnidentifiedImageError, QuantizationError) as e:
        typer.secho(f"Error loading image {input_path}: {e}", fg=typer.colors.RED)
        raise typer.Exit(code=1)


@app.command("image")
def image_cli(
    input_path: Path = typer.Argument(
        ...,
        help="Input image file (e.g., photo.png).",
        metavar="INPUT_FILE",
        exists=True, file_okay=True, dir_okay=False, readable=True, resolve_path=True,
    ),
    output_path: Path = typer.Argument(
        ...,
        help="Output image file. Format follows the suffix (.png keeps metadata, .bmp, ...).",
        metavar="OUTPUT_FILE",
        dir_okay=False, resolve_path=True,
    ),
    num_colors: int = typer.Option(
        DEFAULT_NUM_COLORS, "--num-colors", "-n", min=1, help="Number of palette colors."
    ),
    metric: MetricName = typer.Option(
        MetricName.SQUARED_EUCLIDEAN, "--metric", help="Color distance used for clustering."
    ),
    max_iterations: int = typer.Option(
        DEFAULT_MAX_ITERATIONS, "--max-iterations", min=1, help="Stop refining after this many passes."
    ),
    make_legend: bool = typer.Option(
        True, "--legend/--no-legend", help="Also write <output>-legend.png with the palette."
    ),
    frequency_sort_palette: bool = typer.Option(
        True,
        "--frequency-sort-palette/--no-frequency-sort-palette",
        help="Order the reported palette and legend by pixel count (most used first).",
    ),
    yes: bool = typer.Option(False, "--yes", "-y", help="Overwrite existing files."),
    verbose: bool = typer.Option(False, "--verbose", "-v", help="Log clustering progress."),
):
    """
    Quantize a single image.
    """
    configure_logging(verbose)
    command_line_str = " ".join(sys.argv)

    legend_path = output_path.with_name(f"{output_path.stem}-legend.png")
    expected = [output_path] + ([legend_path] if make_legend else [])
    clobbered = [p for p in expected if p.exists()]
    if clobbered and not yes:
        typer.secho("Error: Files already exist:", fg=typer.colors.RED)
        for path in clobbered:
            typer.secho(f"  {path}", fg=typer.colors.RED)
        typer.secho("Use --yes (-y) to overwrite.", fg=typer.colors.YELLOW)
        raise typer.Exit(code=1)

    quantizer = load_quantizer(input_path, metric, max_iterations)
    typer.echo(f"Quantizing {input_path.name} ({quantizer.grid.cols}x{quantizer.grid.rows}) "
               f"to {num_colors} colors using {metric.value}...")

    result = quantizer.cluster(num_colors)
    if not result.converged:
        typer.secho(f"Warning: palette did not converge within {max_iterations} iterations; "
                    "using the last palette.", fg=typer.colors.YELLOW)

    quantized_image = file_utils.grid_to_image(apply_color_map(quantizer.grid, result.color_map))
    try:
        file_utils.save_quantized_image(
            quantized_image,
            output_path,
            command_line_invocation=command_line_str,
            additional_metadata={
                "SourceImage": str(input_path),
                "Metric": metric.value,
                "NumColors": str(num_colors),
                "Iterations": str(result.iterations),
                "Converged": str(result.converged),
                "Palette": " ".join(color.hex for color in result.palette),
            },
        )
    except (OSError, ValueError) as e:
        typer.secho(f"Error saving {output_path}: {e}", fg=typer.colors.RED)
        raise typer.Exit(code=1)
    typer.echo(f"Quantized image saved to: {output_path}")

    entries = list(zip(result.palette, result.counts))
    if frequency_sort_palette:
        entries.sort(key=lambda entry: entry[1], reverse=True)
    total = sum(result.counts)
    typer.echo(f"Palette ({result.iterations} iteration(s)):")
    for idx, (color, count) in enumerate(entries):
        typer.echo(f"  {idx:>3}  {color.hex}  rgb{tuple(color)}  {100.0 * count / total:5.1f}%")

    if make_legend:
        legend_image = legend.create_legend_image(
            [color for color, _ in entries], counts=[count for _, count in entries]
        )
        try:
            file_utils.save_quantized_image(
                legend_image, legend_path,
                command_line_invocation=command_line_str,
                additional_metadata={"FileType": "Palette Legend", "SourceImage": str(input_path)},
            )
            typer.echo(f"Palette legend saved to: {legend_path}")
        except (OSError, ValueError) as e:
            typer.secho(f"Error saving palette legend: {e}", fg=typer.colors.RED)

    typer.secho("Done.", fg=typer.colors.GREEN)


@app.command("batch")
def batch_cli(
    input_dir: Path = typer.Argument(
        ...,
        help="Directory of images to quantize (not searched recursively).",
        metavar="INPUT_DIRECTORY",
        exists=True, file_okay=False, dir_okay=True, readable=True, resolve_path=True,
    ),
    output_dir: Path = typer.Argument(
        ...,
        help="Base directory for results. Will be created if it doesn't exist.",
        metavar="OUTPUT_DIRECTORY",
        file_okay=False, dir_okay=True, resolve_path=True,
    ),
    num_colors: Optional[List[int]] = typer.Option(
        None, "--num-colors", "-n", min=1,
        help="Palette size; repeat for several. Default: 2, 4, 8 and 16.",
    ),
    metrics: Optional[List[MetricName]] = typer.Option(
        None, "--metric", help="Metric; repeat for several. Default: squared-euclidean.",
    ),
    run_id: str = typer.Option("cquant", "--run-id", help="Top-level folder and file name prefix."),
    image_format: str = typer.Option("png", "--format", help="Output format: png or bmp."),
    max_iterations: int = typer.Option(
        DEFAULT_MAX_ITERATIONS, "--max-iterations", min=1, help="Stop refining after this many passes."
    ),
    yes: bool = typer.Option(False, "--yes", "-y", help="Overwrite existing files instead of skipping them."),
    verbose: bool = typer.Option(False, "--verbose", "-v", help="Log clustering progress."),
):
    """
    Quantize every image in a directory for each palette size and metric.
    Results go to OUTPUT_DIRECTORY/run-id/<image>/<metric>/n<K>/run-id_<image>_<metric>_n<K>.<format>
    """
    configure_logging(verbose)
    command_line_str = " ".join(sys.argv)

    image_format = image_format.lower().lstrip(".")
    if image_format not in ("png", "bmp"):
        typer.secho(f"Error: --format must be png or bmp, got '{image_format}'.", fg=typer.colors.RED)
        raise typer.Exit(code=1)
    sizes = num_colors or BATCH_DEFAULT_NUM_COLORS
    metric_names = metrics or [MetricName.SQUARED_EUCLIDEAN]

    images = file_utils.find_images(input_dir)
    if not images:
        typer.secho(f"No images found in {input_dir}.", fg=typer.colors.YELLOW)
        raise typer.Exit(code=0)

    written = skipped = 0
    for image_path in images:
        for metric in metric_names:
            quantizer = load_quantizer(image_path, metric, max_iterations)
            for n in sizes:
                out_path = file_utils.build_output_path(
                    output_dir, run_id, image_path.stem, metric.value, f"n{n}", suffix=f".{image_format}"
                )
                if out_path.exists() and not yes:
                    typer.secho(f"  Skipping existing {out_path}", fg=typer.colors.YELLOW)
                    skipped += 1
                    continue
                typer.echo(f"Running on {image_path.name} with {n} colors ({metric.value})")
                quantizer.quantize_to_file(
                    out_path, n,
                    command_line_invocation=command_line_str,
                    additional_metadata={"SourceImage": str(image_path)},
                )
                written += 1

    typer.secho(f"Batch complete: {written} written, {skipped} skipped. Outputs in: {output_dir / run_id}",
                fg=typer.colors.GREEN)


if __name__ == "__main__":
    rich.traceback.install(show_locals=False, suppress=[typer])
    app()
