from __future__ import annotations
import math
from typing import Dict, NamedTuple, Optional, Tuple

import numpy as np

from blurclust.config.schemas import BlurCfg
from blurclust.imaging.grid import HitImage

# ----------------- public datatypes -----------------

class BlurParams(NamedTuple):
    """Blur radii and Gaussian sigmas after scaling by the fitted direction."""
    blur_wire: int
    blur_tick: int
    sigma_wire: int
    sigma_tick: int

class BlurResult(NamedTuple):
    blurred: np.ndarray
    params: Optional[BlurParams]      # None when blurring is switched off
    direction: Tuple[float, float]

# ----------------- direction estimate -----------------

def _round_half_away(v: float) -> int:
    return int(math.copysign(math.floor(abs(v) + 0.5), v))

def _scaled(value: float, component: float) -> int:
    return max(abs(_round_half_away(value * component)), 1)

def fit_direction(hit_image: HitImage) -> Tuple[float, float]:
    """
    Least-squares slope of tick against wire over all hit cells, returned as
    the unit vector (1, m)/|(1, m)|.

    A degenerate fit (single hit, or every hit on one wire) gives no
    preferred direction and returns (1, 0).
    """
    n = 0
    sx = sy = sx2 = sxy = 0
    for wire, tick in hit_image.occupied():
        n += 1
        sx += wire
        sy += tick
        sx2 += wire * wire
        sxy += wire * tick

    denom = n * sx2 - sx * sx
    if n == 0 or denom == 0:
        return 1.0, 0.0
    gradient = (n * sxy - sx * sy) / denom
    norm = math.hypot(1.0, gradient)
    return 1.0 / norm, gradient / norm

def find_blurring_parameters(hit_image: HitImage, cfg: BlurCfg) -> Tuple[BlurParams, Tuple[float, float]]:
    """Scale the configured radii and sigmas by the direction cosines of the hits."""
    ux, uy = fit_direction(hit_image)
    params = BlurParams(
        blur_wire=_scaled(cfg.blur_wire, ux),
        blur_tick=_scaled(cfg.blur_tick, uy),
        sigma_wire=_scaled(cfg.sigma_wire, ux),
        sigma_tick=_scaled(cfg.sigma_tick, uy),
    )
    return params, (ux, uy)

# ----------------- kernels -----------------

def _gauss_1d(offsets: np.ndarray, sigma: float) -> np.ndarray:
    sig2 = 2.0 * sigma * sigma
    return np.exp(-(offsets * offsets) / sig2) / math.sqrt(sig2 * math.pi)

def kernel_half_height(params: BlurParams, cfg: BlurCfg) -> int:
    return params.blur_tick * (cfg.max_tick_width_scale + 1)

def make_kernels(params: BlurParams, cfg: BlurCfg) -> Dict[int, np.ndarray]:
    """
    One (2*blur_wire+1, 2*blur_tick*kernel_scale+1) Gaussian kernel per
    configured multiplier k, with tick sigma sigma_tick*k.

    Kernels are not normalised; different k carry different total weight.
    """
    half_h = kernel_half_height(params, cfg)
    i = np.arange(-params.blur_wire, params.blur_wire + 1, dtype=np.float64)
    j = np.arange(-half_h, half_h + 1, dtype=np.float64)
    wire_profile = _gauss_1d(i, params.sigma_wire)

    kernels: Dict[int, np.ndarray] = {}
    for k in cfg.kernels:
        tick_profile = _gauss_1d(j, params.sigma_tick * k)
        kernels[int(k)] = np.outer(wire_profile, tick_profile)
    return kernels

def tick_scale_for(width: float, cfg: BlurCfg) -> int:
    scale = _round_half_away(width / cfg.tick_width_rescale)
    return max(min(scale, cfg.max_tick_width_scale), 1)

def select_kernel(tick_scale: int, kernels: Dict[int, np.ndarray]) -> np.ndarray:
    """Kernel of the largest available multiplier <= tick_scale."""
    for k in range(tick_scale, 0, -1):
        if k in kernels:
            return kernels[k]
    raise KeyError("no kernel with multiplier <= %d (multiplier 1 missing)" % tick_scale)

# ----------------- convolution -----------------

def convolve(
    image: np.ndarray,
    widths: np.ndarray,
    kernels: Dict[int, np.ndarray],
    params: BlurParams,
    cfg: BlurCfg,
) -> np.ndarray:
    """
    Spread every non-zero cell with the kernel chosen by its hit width.

    Tick offsets run over [-blur_tick*s, (blur_tick+1)*s) for the cell's tick
    scale s; wire offsets over [-blur_wire, blur_wire]. Offsets past the
    kernel's tick extent carry no weight. Contributions are summed and not
    renormalised.
    """
    nx, ny = image.shape
    bw = params.blur_wire
    half_h = kernel_half_height(params, cfg)
    out = np.zeros_like(image, dtype=np.float64)

    xs, ys = np.nonzero(image)
    for x, y in zip(xs.tolist(), ys.tolist()):
        charge = image[x, y]
        ts = tick_scale_for(float(widths[x, y]), cfg)
        kernel = select_kernel(ts, kernels)

        dx0 = max(-bw, -x)
        dx1 = min(bw, nx - 1 - x)
        dy0 = max(-params.blur_tick * ts, -y, -half_h)
        dy1 = min((params.blur_tick + 1) * ts - 1, ny - 1 - y, half_h)
        if dx0 > dx1 or dy0 > dy1:
            continue

        out[x + dx0:x + dx1 + 1, y + dy0:y + dy1 + 1] += (
            charge * kernel[bw + dx0:bw + dx1 + 1, half_h + dy0:half_h + dy1 + 1]
        )

    return out

def gaussian_blur(hit_image: HitImage, cfg: BlurCfg, *, diagnostics_level: int = 0) -> BlurResult:
    """
    Blur the hit image with direction-scaled, width-dependent Gaussians.

    With both sigmas configured to zero the image is returned unblurred.
    """
    if cfg.sigma_wire == 0 and cfg.sigma_tick == 0:
        return BlurResult(hit_image.image.copy(), None, (1.0, 0.0))

    params, direction = find_blurring_parameters(hit_image, cfg)
    kernels = make_kernels(params, cfg)
    blurred = convolve(hit_image.image, hit_image.widths, kernels, params, cfg)

    if diagnostics_level >= 2:
        print(f"[blur] direction=({direction[0]:.3f}, {direction[1]:.3f}) "
              f"blur wire={params.blur_wire} tick={params.blur_tick}; "
              f"sigma wire={params.sigma_wire} tick={params.sigma_tick}")
        print(f"[blur] mass in={float(hit_image.image.sum()):.2f} out={float(blurred.sum()):.2f}")

    return BlurResult(blurred, params, direction)
