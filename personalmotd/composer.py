"""Compose personalised server icons from a skin texture and a base icon.

Every step works on RGBA Pillow images and returns a new image; inputs are
never modified. Rotation uses exact transposes and scaling uses
nearest-neighbour, so identical inputs always give byte-identical output.
"""

from __future__ import annotations

from typing import Tuple

from PIL import Image

from .errors import OutOfBoundsError
from .models import HeadTransform, Rect

_QUARTER_TURNS = {
    1: Image.Transpose.ROTATE_270,
    2: Image.Transpose.ROTATE_180,
    3: Image.Transpose.ROTATE_90,
}


def _rgba(image: "Image.Image") -> "Image.Image":
    if image.mode == "RGBA":
        return image
    return image.convert("RGBA")


def crop(image: "Image.Image", rect: Rect) -> "Image.Image":
    """Cut rect out of image, refusing rectangles that leave the image."""
    if not rect.fits(image.width, image.height):
        raise OutOfBoundsError(
            f"Rectangle {rect.x},{rect.y} {rect.w}x{rect.h} does not fit a {image.width}x{image.height} image"
        )
    return _rgba(image).crop(rect.box)


def build_head(face: "Image.Image", hat: "Image.Image") -> "Image.Image":
    """Layer the hat over the face on a transparent canvas large enough for both."""
    width = max(face.width, hat.width)
    height = max(face.height, hat.height)
    head = Image.new("RGBA", (width, height), (0, 0, 0, 0))
    head.alpha_composite(_rgba(face))
    head.alpha_composite(_rgba(hat))
    return head


def rotate_quadrants(image: "Image.Image", quadrants: int) -> "Image.Image":
    """Turn image clockwise by whole quarter turns."""
    turns = quadrants % 4
    if turns == 0:
        return _rgba(image).copy()
    return _rgba(image).transpose(_QUARTER_TURNS[turns])


def scale_nearest(image: "Image.Image", scale: int) -> "Image.Image":
    if scale < 1:
        raise ValueError(f"Scale must be at least 1, got {scale}")
    if scale == 1:
        return _rgba(image).copy()
    return _rgba(image).resize((image.width * scale, image.height * scale), Image.Resampling.NEAREST)


def _clip_offset(offset: int) -> Tuple[int, int]:
    """Split a possibly negative offset into (destination, source) offsets."""
    if offset < 0:
        return 0, -offset
    return offset, 0


def overlay(base: "Image.Image", layer: "Image.Image", offset: Tuple[int, int]) -> "Image.Image":
    """Alpha-composite layer onto a copy of base; pixels past the edges are dropped."""
    result = _rgba(base).copy()
    dest_x, src_x = _clip_offset(offset[0])
    dest_y, src_y = _clip_offset(offset[1])
    width = min(layer.width - src_x, result.width - dest_x)
    height = min(layer.height - src_y, result.height - dest_y)
    if width <= 0 or height <= 0:
        return result
    visible = _rgba(layer).crop((src_x, src_y, src_x + width, src_y + height))
    result.alpha_composite(visible, dest=(dest_x, dest_y))
    return result


def transform_head(head: "Image.Image", transform: HeadTransform) -> "Image.Image":
    return scale_nearest(rotate_quadrants(head, transform.rotate), transform.scale)


def compose_icon(
    base: "Image.Image",
    skin: "Image.Image",
    face_rect: Rect,
    hat_rect: Rect,
    transform: HeadTransform,
) -> "Image.Image":
    """Build the personalised icon for one skin.

    Raises OutOfBoundsError when either rectangle does not fit the skin.
    """
    face = crop(skin, face_rect)
    hat = crop(skin, hat_rect)
    head = transform_head(build_head(face, hat), transform)
    return overlay(base, head, (transform.shift_x, transform.shift_y))


__all__ = [
    "build_head",
    "compose_icon",
    "crop",
    "overlay",
    "rotate_quadrants",
    "scale_nearest",
    "transform_head",
]
