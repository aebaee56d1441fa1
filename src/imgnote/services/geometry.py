"""Bounds checking for note rectangles."""

from imgnote.exceptions import GeometryError
from imgnote.models.schema import Rect


def is_within_image(rect: Rect, image_width: int, image_height: int) -> bool:
    """Return True if the rectangle lies entirely inside the image.

    Edges may touch the image border: ``x + width == image_width`` fits.
    """
    return not (
        rect.x < 0
        or rect.y < 0
        or rect.width < 0
        or rect.height < 0
        or rect.x + rect.width > image_width
        or rect.y + rect.height > image_height
    )


def validate_geometry(rect: Rect, image_width: int, image_height: int) -> None:
    """Raise GeometryError if the rectangle does not fit the image."""
    if not is_within_image(rect, image_width, image_height):
        raise GeometryError(
            x=rect.x,
            y=rect.y,
            width=rect.width,
            height=rect.height,
            image_width=image_width,
            image_height=image_height,
        )
