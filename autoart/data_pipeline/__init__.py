"""Image splitting and stroke planning.

Modules:
    - superpixels: SEEDS-style presegmentation
    - median_cut / kmeans: palette clustering
    - quantize: image → fixed-size palette image + color tally
    - simplify: complete-linkage merging of near-identical colors
    - layers: stray-pixel cleanup, per-color masks, previews
    - chunking: 8-connected components of a mask
    - paths: DFS+A* and edge-following stroke generation
    - optimizer: small-stroke merging and serpentine ordering
    - pipeline: orchestration over all of the above

Workflow:
    1. Quantize the image to color_count colors
    2. Optionally remove stray pixels and merge near-identical colors
    3. Extract one mask per color
    4. Per layer (concurrently): chunk → action sets → optimize
"""
