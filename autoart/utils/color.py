"""Color space conversions and perceptual distances.

Provides:
    - sRGB ↔ linear RGB conversions (exact sRGB transfer function)
    - Linear RGB ↔ OKLab (Björn Ottosson's matrices)
    - Linear RGB ↔ CIE XYZ ↔ CIE L*a*b* (D65 illuminant)
    - rgb_to_lab / lab_to_rgb: 8-bit sRGB ↔ selected perceptual space
    - ΔE76: Euclidean distance between two Lab colors

Used by:
    - Superpixel presegmentation: per-pixel Lab coordinates and edge strength
    - Palette quantizer: working-space samples and palette back-conversion
    - Color simplification: CIE76 distances and Lab centroids

All conversions operate on torch tensors with channels LAST, shape (..., 3),
so the same call handles a single color, an (N, 3) sample list or an
(H, W, 3) image. Numpy wrappers are provided for the pipeline stages.

Invariants:
    - RGB side is 8-bit scale [0, 255]; back-conversions saturate to that range
    - The color space is an explicit argument; there is no module-level state
    - OKLab: L in [0, 1], a/b roughly [-0.4, 0.4]
    - CIELab: L in [0, 100], a/b roughly [-128, 127]
"""

from enum import Enum
from typing import Union

import numpy as np
import torch

from .errors import InvalidConfigurationError


class ColorSpace(str, Enum):
    """Working space for color math."""
    OKLAB = "oklab"
    CIELAB = "cielab"
    RGB = "rgb"


# sRGB (linear) → XYZ, D65
_RGB_TO_XYZ = (
    (0.4124564, 0.3575761, 0.1804375),
    (0.2126729, 0.7151522, 0.0721750),
    (0.0193339, 0.1191920, 0.9503041),
)
_XYZ_TO_RGB = (
    (3.2404542, -1.5371385, -0.4985314),
    (-0.9692660, 1.8760108, 0.0415560),
    (0.0556434, -0.2040259, 1.0572252),
)
_D65_WHITE = (0.95047, 1.0, 1.08883)

# OKLab
_RGB_TO_LMS = (
    (0.4122214708, 0.5363325363, 0.0514459929),
    (0.2119034982, 0.6806995451, 0.1073969566),
    (0.0883024619, 0.2817188376, 0.6299787005),
)
_LMS_TO_OKLAB = (
    (0.2104542553, 0.7936177850, -0.0040720468),
    (1.9779984951, -2.4285922050, 0.4505937099),
    (0.0259040371, 0.7827717662, -0.8086757660),
)
_OKLAB_TO_LMS = (
    (1.0, 0.3963377774, 0.2158037573),
    (1.0, -0.1055613458, -0.0638541728),
    (1.0, -0.0894841775, -1.2914855480),
)
_LMS_TO_RGB = (
    (4.0767416621, -3.3077115913, 0.2309699292),
    (-1.2684380046, 2.6097574011, -0.3413193965),
    (-0.0041960863, -0.7034186147, 1.7076147010),
)

_DELTA = 6.0 / 29.0


def resolve_space(space: Union[ColorSpace, str]) -> ColorSpace:
    """Coerce a user-supplied color space value into a ColorSpace.

    Raises
    ------
    InvalidConfigurationError
        If the value names no supported space
    """
    try:
        return ColorSpace(space.lower() if isinstance(space, str) else space)
    except ValueError as e:
        allowed = [s.value for s in ColorSpace]
        raise InvalidConfigurationError(
            f"Unsupported color space {space!r}, expected one of {allowed}"
        ) from e


def _as_float(x: torch.Tensor) -> torch.Tensor:
    if not torch.is_floating_point(x):
        return x.to(torch.float64)
    return x


def _apply_matrix(x: torch.Tensor, mat) -> torch.Tensor:
    """Multiply every (..., 3) vector by a 3x3 matrix."""
    m = torch.tensor(mat, dtype=x.dtype, device=x.device)
    return torch.matmul(x, m.T)


def _check_channels(x: torch.Tensor) -> None:
    if x.ndim == 0 or x.shape[-1] != 3:
        raise ValueError(f"Expected shape (..., 3), got {tuple(x.shape)}")


def srgb_to_linear(img: torch.Tensor) -> torch.Tensor:
    """Convert sRGB [0,1] to linear RGB [0,1].

    Parameters
    ----------
    img : torch.Tensor
        sRGB values, any shape, range [0, 1]

    Returns
    -------
    torch.Tensor
        Linear RGB values, same shape

    Notes
    -----
    Exact sRGB transfer function:
        - Linear region for small values: x / 12.92
        - Power region: ((x + 0.055) / 1.055)^2.4
    """
    img = torch.clamp(img, 0.0, 1.0)
    linear = img / 12.92
    power = torch.pow((img + 0.055) / 1.055, 2.4)
    return torch.where(img <= 0.04045, linear, power)


def linear_to_srgb(img: torch.Tensor) -> torch.Tensor:
    """Convert linear RGB [0,1] to sRGB [0,1].

    Inverse of srgb_to_linear. Input is clamped to [0, 1] first, which is
    where out-of-gamut Lab round-trips get absorbed.
    """
    img = torch.clamp(img, 0.0, 1.0)
    linear = img * 12.92
    power = 1.055 * torch.pow(img, 1.0 / 2.4) - 0.055
    return torch.where(img <= 0.0031308, linear, power)


def linear_rgb_to_oklab(rgb: torch.Tensor) -> torch.Tensor:
    """Linear RGB (..., 3) → OKLab (..., 3)."""
    lms = _apply_matrix(rgb, _RGB_TO_LMS)
    # Signed cube root: pow() of a negative base with a fractional exponent is NaN
    lms = torch.sign(lms) * torch.pow(torch.abs(lms), 1.0 / 3.0)
    return _apply_matrix(lms, _LMS_TO_OKLAB)


def oklab_to_linear_rgb(lab: torch.Tensor) -> torch.Tensor:
    """OKLab (..., 3) → linear RGB (..., 3), not clamped."""
    lms = _apply_matrix(lab, _OKLAB_TO_LMS)
    return _apply_matrix(lms ** 3, _LMS_TO_RGB)


def linear_rgb_to_xyz(rgb: torch.Tensor) -> torch.Tensor:
    """Linear RGB (..., 3) → CIE XYZ (..., 3), D65."""
    return _apply_matrix(rgb, _RGB_TO_XYZ)


def xyz_to_linear_rgb(xyz: torch.Tensor) -> torch.Tensor:
    """CIE XYZ (..., 3) → linear RGB (..., 3), not clamped."""
    return _apply_matrix(xyz, _XYZ_TO_RGB)


def xyz_to_cielab(xyz: torch.Tensor) -> torch.Tensor:
    """Convert XYZ to CIE L*a*b* (D65 white).

    Parameters
    ----------
    xyz : torch.Tensor
        XYZ coordinates, shape (..., 3)

    Returns
    -------
    torch.Tensor
        Lab coordinates, shape (..., 3); L in [0, 100]

    Notes
    -----
    Uses the CIE piecewise f(t) with the 6/29 threshold.
    """
    ref = torch.tensor(_D65_WHITE, dtype=xyz.dtype, device=xyz.device)
    t = xyz / ref
    linear = t / (3.0 * _DELTA * _DELTA) + (4.0 / 29.0)
    power = torch.pow(torch.clamp(t, min=0.0), 1.0 / 3.0)
    f = torch.where(t <= _DELTA ** 3, linear, power)

    fx, fy, fz = f[..., 0], f[..., 1], f[..., 2]
    L = 116.0 * fy - 16.0
    a = 500.0 * (fx - fy)
    b = 200.0 * (fy - fz)
    return torch.stack([L, a, b], dim=-1)


def cielab_to_xyz(lab: torch.Tensor) -> torch.Tensor:
    """Convert CIE L*a*b* (D65 white) back to XYZ. Exact inverse of xyz_to_cielab."""
    L, a, b = lab[..., 0], lab[..., 1], lab[..., 2]
    fy = (L + 16.0) / 116.0
    fx = fy + a / 500.0
    fz = fy - b / 200.0
    f = torch.stack([fx, fy, fz], dim=-1)

    cube = f ** 3
    linear = 3.0 * _DELTA * _DELTA * (f - 4.0 / 29.0)
    t = torch.where(f > _DELTA, cube, linear)

    ref = torch.tensor(_D65_WHITE, dtype=lab.dtype, device=lab.device)
    return t * ref


def rgb_to_lab(rgb: torch.Tensor, space: Union[ColorSpace, str] = ColorSpace.OKLAB) -> torch.Tensor:
    """Convert 8-bit sRGB to a perceptual Lab space.

    Parameters
    ----------
    rgb : torch.Tensor
        sRGB values, shape (..., 3), range [0, 255]
    space : ColorSpace or str
        "oklab" (default) or "cielab"

    Returns
    -------
    torch.Tensor
        Lab coordinates, shape (..., 3), floating point

    Raises
    ------
    InvalidConfigurationError
        If space is not a Lab space

    Notes
    -----
    White maps to L=100 (CIELab) or L=1 (OKLab) with a, b ≈ 0.
    """
    space = resolve_space(space)
    _check_channels(rgb)
    linear = srgb_to_linear(_as_float(rgb) / 255.0)

    if space == ColorSpace.OKLAB:
        return linear_rgb_to_oklab(linear)
    if space == ColorSpace.CIELAB:
        return xyz_to_cielab(linear_rgb_to_xyz(linear))
    raise InvalidConfigurationError(f"rgb_to_lab needs a Lab space, got {space.value!r}")


def lab_to_rgb(lab: torch.Tensor, space: Union[ColorSpace, str] = ColorSpace.OKLAB) -> torch.Tensor:
    """Convert Lab coordinates back to 8-bit scale sRGB.

    Parameters
    ----------
    lab : torch.Tensor
        Lab coordinates, shape (..., 3)
    space : ColorSpace or str
        "oklab" (default) or "cielab"

    Returns
    -------
    torch.Tensor
        sRGB values, shape (..., 3), float in [0, 255] (not rounded)

    Notes
    -----
    Saturates instead of raising: out-of-gamut inputs are clamped.
    """
    space = resolve_space(space)
    _check_channels(lab)
    lab = _as_float(lab)

    if space == ColorSpace.OKLAB:
        linear = oklab_to_linear_rgb(lab)
    elif space == ColorSpace.CIELAB:
        linear = xyz_to_linear_rgb(cielab_to_xyz(lab))
    else:
        raise InvalidConfigurationError(f"lab_to_rgb needs a Lab space, got {space.value!r}")

    return torch.clamp(linear_to_srgb(linear) * 255.0, 0.0, 255.0)


def rgb_to_lab_np(rgb: np.ndarray, space: Union[ColorSpace, str] = ColorSpace.OKLAB) -> np.ndarray:
    """Numpy wrapper around rgb_to_lab; returns float64 (..., 3)."""
    t = torch.from_numpy(np.ascontiguousarray(rgb, dtype=np.float64))
    return rgb_to_lab(t, space).numpy()


def lab_to_rgb_np(lab: np.ndarray, space: Union[ColorSpace, str] = ColorSpace.OKLAB) -> np.ndarray:
    """Numpy wrapper around lab_to_rgb; returns float64 (..., 3) in [0, 255]."""
    t = torch.from_numpy(np.ascontiguousarray(lab, dtype=np.float64))
    return lab_to_rgb(t, space).numpy()


def to_rgb8(rgb: np.ndarray) -> np.ndarray:
    """Round and saturate float RGB to uint8."""
    return np.clip(np.rint(rgb), 0, 255).astype(np.uint8)


def delta_e76(lab1: torch.Tensor, lab2: torch.Tensor) -> torch.Tensor:
    """Compute CIE76 color difference (Euclidean distance in Lab).

    Parameters
    ----------
    lab1, lab2 : torch.Tensor
        Lab coordinates, broadcastable shapes (..., 3)

    Returns
    -------
    torch.Tensor
        ΔE76 values, shape (...)

    Notes
    -----
    Reference scale (CIELab): < 1 imperceptible, 1-2 close observation,
    2-10 perceptible at a glance.
    """
    return torch.linalg.norm(lab1 - lab2, dim=-1)
