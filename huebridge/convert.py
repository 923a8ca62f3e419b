"""
Unit conversion between hub-native values and normalized attributes.

The hub reports colour as CIE xy chromaticity, colour temperature in mirek
and brightness in its own ranges. The host side works with:
- hue in degrees (0-359)
- saturation, brightness and colour temperature in percent

All functions here are pure. Values outside the accepted range are clamped,
never rejected.
"""

from typing import NamedTuple

import numpy as np

# Mirek range supported by the hub
MIREK_MIN = 153
MIREK_MAX = 500

# Native brightness scale
BRIGHTNESS_MAX = 255

# Returned by hsv_to_xy when no light would be emitted
NEUTRAL_XY = (0.3, 0.3)

# Linear sRGB <-> CIE XYZ (D65)
XYZ_TO_RGB = np.array([
    [3.2406, -1.5372, -0.4986],
    [-0.9689, 1.8758, 0.0415],
    [0.0557, -0.2040, 1.0570],
])

RGB_TO_XYZ = np.array([
    [0.412453, 0.357580, 0.180423],
    [0.212671, 0.715160, 0.072169],
    [0.019334, 0.119193, 0.950227],
])


class HSV(NamedTuple):
    """Hue in degrees, saturation in percent."""
    hue: int
    saturation: int


class XY(NamedTuple):
    """CIE 1931 chromaticity coordinates."""
    x: float
    y: float


def clamp(value: float, low: float, high: float) -> float:
    """Clamp value into [low, high]."""
    return max(low, min(high, value))


def xy_to_hsv(x: float, y: float, brightness_percent: float = 100.0) -> HSV:
    """
    Convert CIE xy (plus brightness) to hue/saturation.

    Args:
        x: CIE x coordinate
        y: CIE y coordinate
        brightness_percent: Luminance used as Y, 1-100

    Returns:
        HSV with hue 0-359 and saturation 0-100
    """
    x = clamp(x, 0.0, 1.0)
    y = clamp(y, 0.0, 1.0)
    if y == 0:
        return HSV(0, 0)

    lum = clamp(brightness_percent, 1.0, 100.0) / 100.0
    xyz = np.array([(x / y) * lum, lum, ((1 - x - y) / y) * lum])
    r, g, b = (float(c) for c in XYZ_TO_RGB @ xyz)

    v = max(r, g, b)
    low = min(r, g, b)
    if v <= 0:
        return HSV(0, 0)

    s = (v - low) / v

    if v == low:
        h = 0.0
    elif v == r:
        h = (60 * ((g - b) / (v - low))) % 360
    elif v == g:
        h = 60 * ((b - r) / (v - low)) + 120
    else:
        h = 60 * ((r - g) / (v - low)) + 240

    return HSV(
        hue=int(round(h)) % 360,
        saturation=int(clamp(round(s * 100), 0, 100)),
    )


def hsv_to_xy(hue: float, saturation: float, value: float = 100.0) -> XY:
    """
    Convert hue/saturation/value to CIE xy.

    Args:
        hue: Degrees, 0-359
        saturation: Percent, 0-100
        value: Percent, 0-100
    """
    h = (clamp(hue, 0, 359) % 360) / 60
    s = clamp(saturation, 0, 100) / 100
    v = clamp(value, 0, 100) / 100

    c = v * s
    x = c * (1 - abs((h % 2) - 1))
    m = v - c

    sector = int(h)
    if sector == 0:
        rgb = (c, x, 0.0)
    elif sector == 1:
        rgb = (x, c, 0.0)
    elif sector == 2:
        rgb = (0.0, c, x)
    elif sector == 3:
        rgb = (0.0, x, c)
    elif sector == 4:
        rgb = (x, 0.0, c)
    else:
        rgb = (c, 0.0, x)

    xyz = RGB_TO_XYZ @ (np.array(rgb) + m)
    total = float(xyz.sum())
    if total == 0:
        return XY(*NEUTRAL_XY)

    return XY(float(xyz[0]) / total, float(xyz[1]) / total)


def mirek_to_percent(mirek: float) -> float:
    """Map 153-500 mirek onto 0-100 percent."""
    mirek = clamp(mirek, MIREK_MIN, MIREK_MAX)
    return (mirek - MIREK_MIN) / (MIREK_MAX - MIREK_MIN) * 100


def percent_to_mirek(percent: float) -> int:
    """Map 0-100 percent onto 153-500 mirek."""
    percent = clamp(percent, 0, 100)
    return int(round(percent / 100 * (MIREK_MAX - MIREK_MIN) + MIREK_MIN))


def brightness_to_percent(brightness: float) -> int:
    """Native 0-255 brightness to 1-100 percent. Never returns 0."""
    brightness = clamp(brightness, 0, BRIGHTNESS_MAX)
    return int(clamp(round(brightness / BRIGHTNESS_MAX * 100), 1, 100))


def percent_to_brightness(percent: float) -> int:
    """1-100 percent to native 0-255 brightness. Never returns 0."""
    percent = clamp(percent, 0, 100)
    return int(clamp(round(percent / 100 * BRIGHTNESS_MAX), 1, BRIGHTNESS_MAX))
