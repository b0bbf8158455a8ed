"""End-to-end image → layers → strokes pipeline.

Stages:
    split_image:
        1. quantize (superpixels + K-Means, or Median-Cut)
        2. remove_stray_pixels (optional)
        3. simplify_quantized (optional, "simplified split")
        4. extract_layers
    plan_layer (per layer, independent):
        5. find_chunks
        6. generate_action_sets
        7. optimize_action_sets
        8. discard_small_action_sets (optional, "simplified drawing")

Layers share nothing but read-only masks, so plan_layers runs them in a
thread pool; each worker owns its traversal grid and tags its log records
with the layer hex color.

Usage:
    from autoart.data_pipeline.pipeline import run_pipeline
    from autoart.utils.validators import load_pipeline_config

    result = run_pipeline(rgba_u8, load_pipeline_config("pipeline.yaml"))
    for plan in result.plans:
        print(plan.layer.hex_color, len(plan.action_sets))
"""

import logging
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass, field
from typing import Dict, List, Optional, Tuple, Union

import numpy as np

from ..utils.logging_config import pop_context, push_context
from ..utils.pixel_buffer import PixelBuffer
from ..utils.profiler import StageTimings, timer
from ..utils.validators import PathConfig, PipelineConfig, SplitConfig
from .chunking import find_chunks
from .layers import ColorLayer, extract_layers, remove_stray_pixels
from .optimizer import ActionSetStatistics, analyze_action_sets, discard_small_action_sets, optimize_action_sets
from .paths import ActionSet, generate_action_sets
from .quantize import count_colors, quantize
from .simplify import simplify_quantized

logger = logging.getLogger(__name__)

RGB = Tuple[int, int, int]


@dataclass(frozen=True)
class LayerPlan:
    """Strokes for one color layer."""
    layer: ColorLayer
    action_sets: List[ActionSet]
    stats_before: ActionSetStatistics
    stats_after: ActionSetStatistics


@dataclass(frozen=True)
class PipelineResult:
    """Everything run_pipeline produces for one image.

    Attributes
    ----------
    quantized : np.ndarray
        (H, W, 4) uint8 image after quantization and cleanup
    color_counts : Dict[RGB, int]
        Final opaque pixel tally per color
    layers : List[ColorLayer]
        One layer per color, largest first
    plans : List[LayerPlan]
        Strokes per layer, same order as layers
    timings : Dict[str, float]
        Seconds spent per stage (layer stages summed over layers)
    """
    quantized: np.ndarray
    color_counts: Dict[RGB, int]
    layers: List[ColorLayer]
    plans: List[LayerPlan]
    timings: Dict[str, float] = field(default_factory=dict)


def split_image(
    image: Union[PixelBuffer, np.ndarray],
    config: Optional[SplitConfig] = None,
    timings: Optional[StageTimings] = None,
    max_workers: Optional[int] = None,
) -> Tuple[np.ndarray, Dict[RGB, int], List[ColorLayer]]:
    """Quantize an image and split it into color layers.

    Returns
    -------
    quantized : np.ndarray
        Final (H, W, 4) uint8 image
    color_counts : Dict[RGB, int]
        Its color tally
    layers : List[ColorLayer]
        Extracted layers
    """
    config = config or SplitConfig()
    timings = timings if timings is not None else StageTimings()

    with timer("quantize", timings.add):
        result = quantize(image, config, max_workers=max_workers)
    quantized, color_counts = result.quantized, result.color_counts

    if config.remove_stray_pixels:
        with timer("stray_pixels", timings.add):
            quantized = remove_stray_pixels(quantized)
        color_counts = count_colors(quantized)

    if config.simplified_split:
        with timer("simplify", timings.add):
            quantized, color_counts = simplify_quantized(
                quantized,
                color_counts,
                threshold=config.merge_threshold,
                min_preservation_ratio=config.min_preservation_ratio,
            )

    with timer("layers", timings.add):
        layers = extract_layers(quantized, color_counts)
    return quantized, color_counts, layers


def plan_layer(
    layer: ColorLayer,
    config: Optional[PathConfig] = None,
    timings: Optional[StageTimings] = None,
) -> LayerPlan:
    """Generate and optimize the strokes of one layer."""
    config = config or PathConfig()
    timings = timings if timings is not None else StageTimings()
    threshold = config.optimizer.small_set_threshold

    push_context(layer=layer.hex_color)
    try:
        with timer("chunking", timings.add):
            chunks = find_chunks(layer.mask)
        with timer("paths", timings.add):
            actions = generate_action_sets(layer.mask, config.algorithm, chunks)
        before = analyze_action_sets(actions, threshold)

        with timer("optimize", timings.add):
            actions = optimize_action_sets(actions, config.optimizer)
            if config.simplified_mode:
                actions = discard_small_action_sets(actions, config.min_action_set_size)
        after = analyze_action_sets(actions, threshold)

        logger.info(f"{len(chunks)} chunks; before: {before}; after: {after}")
        return LayerPlan(layer=layer, action_sets=actions, stats_before=before, stats_after=after)
    finally:
        pop_context(["layer"])


def plan_layers(
    layers: List[ColorLayer],
    config: Optional[PathConfig] = None,
    timings: Optional[StageTimings] = None,
    max_workers: Optional[int] = None,
) -> List[LayerPlan]:
    """Plan every layer concurrently; results keep the layer order."""
    config = config or PathConfig()
    timings = timings if timings is not None else StageTimings()
    if not layers:
        return []
    if max_workers == 1 or len(layers) == 1:
        return [plan_layer(layer, config, timings) for layer in layers]

    with ThreadPoolExecutor(max_workers=max_workers, thread_name_prefix="autoart-layer") as pool:
        futures = [pool.submit(plan_layer, layer, config, timings) for layer in layers]
        return [f.result() for f in futures]


def run_pipeline(
    image: Union[PixelBuffer, np.ndarray],
    config: Optional[PipelineConfig] = None,
) -> PipelineResult:
    """Run the full pipeline on one image.

    Parameters
    ----------
    image : PixelBuffer or np.ndarray
        Source image ((H, W, 4) RGBA or (H, W, 3) RGB uint8 arrays accepted)
    config : PipelineConfig, optional
        Request settings; defaults when None

    Returns
    -------
    PipelineResult

    Raises
    ------
    DegenerateInputError
        If the image is empty or fully transparent
    InvalidConfigurationError
        If the color count cannot be satisfied
    """
    config = config or PipelineConfig()
    timings = StageTimings()

    with timer("total", timings.add):
        quantized, color_counts, layers = split_image(
            image, config.split, timings, max_workers=config.max_workers
        )
        plans = plan_layers(layers, config.paths, timings, max_workers=config.max_workers)

    logger.info(
        f"Pipeline finished: {len(layers)} layers, "
        f"{sum(len(p.action_sets) for p in plans)} action sets in {timings.total('total'):.2f} s"
    )
    return PipelineResult(
        quantized=quantized,
        color_counts=color_counts,
        layers=layers,
        plans=plans,
        timings=timings.as_dict(),
    )
