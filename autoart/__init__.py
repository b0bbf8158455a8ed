"""AutoArt: image → color layers → drawable strokes.

This package turns a raster image into a small palette of perceptually
distinct colors with one mask per color, and turns every mask into ordered
point paths ("action sets") a pointer-driven actuator can trace.

Architecture layers (strict one-way dependency):
    autoart/data_pipeline/ → autoart/utils/

Key invariants:
    - Pure functions over explicit inputs; every setting travels in a
      request-scoped config object (no module-level state)
    - Images are (H, W, 4) uint8 RGBA unless explicitly noted
    - Points are integer (x, y) pixel coordinates
    - Layer masks of one image are pairwise disjoint
"""

__version__ = "1.0.0"
