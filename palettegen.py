import sys
from enum import Enum
from pathlib import Path
from typing import Dict, List, Optional

import numpy as np
import rich.traceback
import typer
from PIL import UnidentifiedImageError

from colorengine import extractor, file_utils, images, legend, quality, sampling
from colorengine.models import (
    Algorithm, ExtractionConfig, InvalidConfigurationError, SamplingStrategy,
)


class PaletteFile(Enum):
    PALETTE_JSON = "palette_json"
    PALETTE_SVG = "palette_svg"
    PALETTE_LEGEND = "palette_legend"


PALETTE_FILE_BASENAMES: Dict[PaletteFile, str] = {
    PaletteFile.PALETTE_JSON: "palette.json",
    PaletteFile.PALETTE_SVG: "palette-swatches.svg",
    PaletteFile.PALETTE_LEGEND: "palette-legend.png",
}


def validate_output_dir(
    output_dir: Path, overwrite: bool = False, expect: Optional[List[PaletteFile]] = None,
) -> Dict[PaletteFile, Path]:
    paths = {key: output_dir / name for key, name in PALETTE_FILE_BASENAMES.items()}
    if not overwrite and expect:
        clobbered = [str(paths[key]) for key in expect if paths[key].exists()]
        if clobbered:
            typer.secho("Error: Files already exist:", fg=typer.colors.RED)
            for path_str in clobbered:
                typer.secho(f"  {path_str}", fg=typer.colors.RED)
            typer.secho("Use --yes (-y) to overwrite.", fg=typer.colors.YELLOW)
            raise typer.Exit(code=1)
    return paths


def echo_palette(result) -> None:
    typer.echo(f"\n{result.color_count} colors via {result.algorithm} "
               f"in {result.extraction_time:.1f} ms (quality {result.quality_score:.3f})")
    for idx, color in enumerate(result.colors):
        r, g, b = color.color.as_tuple()
        typer.echo(f"  {idx:>2}  {color.hex}  rgb({r:>3}, {g:>3}, {b:>3})  "
                   f"freq {color.frequency:.3f}  score {color.weighted_score:.3f}")


def echo_algorithm_comparison(comparison) -> None:
    typer.echo("\nAlgorithm comparison:")
    typer.echo(f"  {'algorithm':<10} {'colors':>6} {'quality':>8} {'time ms':>9} {'peak KiB':>9} {'overall':>8}")
    overall = comparison.comparison["overallScores"]
    for name, result in comparison.results().items():
        typer.echo(f"  {name:<10} {result.color_count:>6} {result.quality_score:>8.3f} "
                   f"{result.extraction_time:>9.1f} {result.memory_usage / 1024:>9.1f} {overall[name]:>8.3f}")
    typer.secho(f"  Winner: {comparison.winner}", fg=typer.colors.GREEN)


def echo_sampling_comparison(comparison) -> None:
    typer.echo("\nSampling strategy comparison:")
    typer.echo(f"  {'strategy':<10} {'samples':>7} {'repr':>6} {'divers':>6} {'edges':>6} {'spatial':>7} {'overall':>8}")
    for name, result in comparison.results.items():
        typer.echo(f"  {name:<10} {result.sample_count:>7} {result.representativeness:>6.3f} "
                   f"{result.diversity_score:>6.3f} {result.edge_coverage:>6.3f} "
                   f"{result.spatial_distribution:>7.3f} {comparison.scores[name]:>8.3f}")
    typer.secho(f"  Winner: {comparison.winner}", fg=typer.colors.GREEN)


def palette_cli(
    input_path: Path = typer.Argument(
        ...,
        help="Input image file (e.g., image.jpg).",
        metavar="INPUT_FILE",
        exists=True, file_okay=True, dir_okay=False, readable=True, resolve_path=True,
    ),
    output_dir: Path = typer.Argument(
        ...,
        help="Directory for output files. Will be created if it doesn't exist.",
        metavar="OUTPUT_DIRECTORY",
        file_okay=False, dir_okay=True, writable=True, resolve_path=True,
    ),
    # --- Extraction Options ---
    num_colors: int = typer.Option(8, "--num-colors", min=1, help="Number of palette colors. Default: 8."),
    max_colors: Optional[int] = typer.Option(
        None, "--max-colors", min=1, help="Upper bound on palette size. Default: max(16, --num-colors)."
    ),
    algorithm: Algorithm = typer.Option(
        Algorithm.HYBRID, "--algorithm", case_sensitive=False, help="Quantization algorithm. Default: hybrid."
    ),
    sampling_strategy: SamplingStrategy = typer.Option(
        SamplingStrategy.HYBRID, "--sampling", case_sensitive=False,
        help="Pixel sampling strategy. Default: hybrid."
    ),
    max_samples: Optional[int] = typer.Option(
        None, "--max-samples", min=1, help="Pixel sample budget (capped at 15000). Default: 100 per color, at least 1000."
    ),
    seed: Optional[int] = typer.Option(None, "--seed", help="Random seed for sampling and k-means seeding."),
    quality_threshold: float = typer.Option(
        0.8, "--quality-threshold", min=0.0, max=1.0, help="Quality score a palette must reach to pass. Default: 0.8."
    ),
    lab_lut: bool = typer.Option(False, "--lab-lut", help="Use the table-driven LAB conversion in k-means."),
    max_dimension: Optional[int] = typer.Option(
        None, "--max-dimension", min=1, help="Downscale the input so its longer side is at most this many pixels."
    ),
    # --- Analysis Options ---
    compare: bool = typer.Option(False, "--compare", help="Also run and compare all four algorithms."),
    compare_sampling: bool = typer.Option(False, "--compare-sampling", help="Also compare the sampling strategies."),
    # --- Legend Options ---
    font_path: Optional[Path] = typer.Option(
        None, "--font-path", help="Path to a .ttf font file for the legend.",
        exists=True, file_okay=True, dir_okay=False, readable=True, resolve_path=True,
    ),
    swatch_size: int = typer.Option(40, "--swatch-size", min=10, help="Legend swatch size. Default: 40px."),
    skip_legend: bool = typer.Option(False, "--skip-legend", help="Skip generating the palette legend PNG."),
    skip_svg: bool = typer.Option(False, "--skip-svg", help="Skip the SVG swatch sheet."),
    # --- Output and Operational Options ---
    yes: bool = typer.Option(False, "--yes", "-y", help="Overwrite existing files."),
):
    """
    Extracts a representative color palette from an input image.
    """
    command_line_str = " ".join(sys.argv)

    try:
        output_dir.mkdir(parents=True, exist_ok=True)
        typer.echo(f"Using output directory: {output_dir}")
    except OSError as e:
        typer.secho(f"Error creating output directory {output_dir}: {e}", fg=typer.colors.RED)
        raise typer.Exit(code=1)

    expected_outputs = [PaletteFile.PALETTE_JSON]
    if not skip_svg:
        expected_outputs.append(PaletteFile.PALETTE_SVG)
    if not skip_legend:
        expected_outputs.append(PaletteFile.PALETTE_LEGEND)
    output_paths = validate_output_dir(output_dir, overwrite=yes, expect=expected_outputs)

    try:
        config = ExtractionConfig(
            target_color_count=num_colors,
            max_color_count=max_colors if max_colors is not None else max(16, num_colors),
            quality_threshold=quality_threshold,
            algorithm=algorithm,
            sampling_strategy=sampling_strategy,
            max_samples=max_samples,
            use_lab_lut=lab_lut,
            seed=seed,
        )
    except InvalidConfigurationError as e:
        typer.secho(f"Error: {e}", fg=typer.colors.RED)
        raise typer.Exit(code=1)

    try:
        image = images.image_from_path(input_path, max_dimension=max_dimension)
    except (UnidentifiedImageError, OSError) as e:
        typer.secho(f"Error opening image {input_path}: {e}", fg=typer.colors.RED)
        raise typer.Exit(code=1)
    typer.echo(f"Loaded {input_path.name}: {image.width}x{image.height} pixels")

    rng = np.random.default_rng(seed)
    result = extractor.extract_palette(image, config, rng)
    if not result.colors:
        typer.secho("Warning: the image has no opaque pixels; the palette is empty.", fg=typer.colors.YELLOW)
    echo_palette(result)
    if result.colors and not result.meets_quality_threshold:
        typer.secho(f"Note: quality {result.quality_score:.3f} is below the threshold {quality_threshold:.2f}.",
                    fg=typer.colors.YELLOW)

    metadata = {
        "Algorithm": result.algorithm,
        "SamplingStrategy": config.sampling_strategy.value,
        "PaletteColors": str(result.color_count),
        "QualityScore": f"{result.quality_score:.4f}",
        "Seed": "none" if seed is None else str(seed),
        "Source": input_path.name,
    }

    file_utils.save_palette_json(output_paths[PaletteFile.PALETTE_JSON], result,
                                 additional_metadata=dict(metadata, CommandLine=command_line_str))
    typer.echo(f"Palette JSON saved to: {output_paths[PaletteFile.PALETTE_JSON]}")

    if not skip_svg:
        file_utils.save_palette_svg(
            output_paths[PaletteFile.PALETTE_SVG],
            result.colors,
            command_line_invocation=command_line_str,
            additional_metadata=metadata,
        )
        typer.echo(f"SVG swatch sheet saved to: {output_paths[PaletteFile.PALETTE_SVG]}")

    if not skip_legend:
        legend_image = legend.create_legend_image(
            result.colors,
            font_path=str(font_path) if font_path else None,
            swatch_size=swatch_size,
            padding=10,
        )
        if legend_image:
            file_utils.save_palette_png(
                legend_image,
                output_paths[PaletteFile.PALETTE_LEGEND],
                command_line_invocation=command_line_str,
                additional_metadata=dict(metadata, SwatchSize=str(swatch_size)),
            )
            typer.echo(f"Palette legend saved to: {output_paths[PaletteFile.PALETTE_LEGEND]}")
        else:
            typer.secho("Warning: Palette legend not generated (empty palette).", fg=typer.colors.YELLOW)

    if compare:
        echo_algorithm_comparison(quality.compare_algorithms(image, config, np.random.default_rng(seed)))

    if compare_sampling:
        echo_sampling_comparison(
            sampling.compare_sampling_strategies(image, config.sampling_config(), np.random.default_rng(seed))
        )

    typer.secho("\nProcessing complete!", fg=typer.colors.GREEN)
    typer.echo(f"Outputs in: {output_dir.resolve()}")


def main():
    rich.traceback.install(show_locals=False, suppress=[typer])
    typer.run(palette_cli)


if __name__ == "__main__":
    main()
