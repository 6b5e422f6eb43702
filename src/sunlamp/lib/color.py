"""HSV to RGB conversion for the lamp's native colour frames."""

from __future__ import annotations

import math

from sunlamp.lib.models import RGB


def round_half_up(value: float) -> int:
    return int(math.floor(value + 0.5))


def hsv2rgb(hue: float, saturation: float, value: float) -> RGB:
    """Convert hue (0-360), saturation (0-100) and value (0-100) to 8-bit RGB."""
    h = max(0.0, min(360.0, float(hue)))
    s = saturation / 100
    v = value / 100

    if s == 0:
        gray = round_half_up(v * 255)
        return RGB(red=gray, green=gray, blue=gray)

    h /= 60
    sector = math.floor(h)
    f = h - sector
    p = v * (1 - s)
    q = v * (1 - s * f)
    t = v * (1 - s * (1 - f))

    # hue == 360 lands in sector 6, which is the same colour as sector 0
    r, g, b = {
        1: (q, v, p),
        2: (p, v, t),
        3: (p, q, v),
        4: (t, p, v),
        5: (v, p, q),
    }.get(sector, (v, t, p))

    return RGB(
        red=round_half_up(r * 255),
        green=round_half_up(g * 255),
        blue=round_half_up(b * 255),
    )
