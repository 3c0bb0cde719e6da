"""Static index groups into the 468-point face mesh topology."""
from dataclasses import dataclass
from typing import Tuple


@dataclass(frozen=True)
class SkinRegion:
    """Named patch of facial skin used for pulse extraction."""
    name: str
    landmarks: Tuple[int, ...]


SKIN_REGIONS: Tuple[SkinRegion, ...] = (
    SkinRegion('forehead', (10, 67, 69, 104, 108, 151, 337, 299)),
    SkinRegion('left_cheek', (205, 50, 117, 118, 101, 36, 120, 119)),
    SkinRegion('right_cheek', (425, 280, 346, 347, 330, 266, 349, 348)),
    SkinRegion('nose_bridge', (6, 168, 197, 195)),
)

# Lips
LIP_OUTER = (61, 146, 91, 181, 84, 17, 314, 405, 321, 375, 291, 308, 324, 318, 402, 317, 14, 87, 178, 88)
LIP_UPPER = (61, 185, 40, 39, 37, 0, 267, 269, 270, 409, 291)
LIP_LOWER = (146, 91, 181, 84, 17, 314, 405, 321, 375)
INNER_LIP_UPPER = 13
INNER_LIP_LOWER = 14

# Eyes, ordered for the six-point eye aspect ratio:
# outer corner, two upper lid points, inner corner, two lower lid points.
LEFT_EYE = (33, 160, 158, 133, 153, 144)
RIGHT_EYE = (362, 385, 387, 263, 373, 380)
LEFT_EYE_OUTER = 33
RIGHT_EYE_OUTER = 263

NOSE_TIP = 1
MESH_SIZE = 468
