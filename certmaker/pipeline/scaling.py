from __future__ import annotations

import logging
from datetime import datetime
from typing import List, Sequence, Tuple

from .. import config
from ..template import CanvasDimensions, Element, Template

logger = logging.getLogger(__name__)


def rescale(
    elements: Sequence[Element],
    old_dims: CanvasDimensions,
    new_dims: CanvasDimensions,
) -> List[Element]:
    """Scale element geometry from one canvas size to another, keeping relative layout."""
    if not old_dims.width or not old_dims.height:
        logger.warning("Skipping rescale from degenerate canvas %sx%s", old_dims.width, old_dims.height)
        return list(elements)
    if old_dims == new_dims:
        return list(elements)

    scale_x = new_dims.width / old_dims.width
    scale_y = new_dims.height / old_dims.height
    return [
        element.model_copy(
            update={
                "x": element.x * scale_x,
                "y": element.y * scale_y,
                "width": element.width * scale_x,
                "height": element.height * scale_y,
            }
        )
        for element in elements
    ]


def fit_within(
    natural_width: float,
    natural_height: float,
    max_width: float = config.DEFAULT_CANVAS_WIDTH,
    max_height: float = config.DEFAULT_CANVAS_HEIGHT,
) -> CanvasDimensions:
    """
    Canvas size for a background of the given natural size.

    The image size is kept when it already fits. Otherwise it is shrunk,
    width first and then height, keeping its aspect ratio.
    """
    width, height = float(natural_width), float(natural_height)
    if width <= 0 or height <= 0:
        return CanvasDimensions(width=width, height=height)
    aspect_ratio = width / height
    if width > max_width:
        width = max_width
        height = width / aspect_ratio
    if height > max_height:
        height = max_height
        width = height * aspect_ratio
    return CanvasDimensions(width=width, height=height)


def rebase_on_background(
    template: Template,
    source: str,
    natural_size: Tuple[float, float],
    max_width: float = config.DEFAULT_CANVAS_WIDTH,
    max_height: float = config.DEFAULT_CANVAS_HEIGHT,
) -> Template:
    new_dims = fit_within(natural_size[0], natural_size[1], max_width, max_height)
    elements = rescale(template.elements, template.canvas_dimensions, new_dims)
    logger.info(
        "Rebased template %s from %sx%s to %.1fx%.1f",
        template.id,
        template.canvas_dimensions.width,
        template.canvas_dimensions.height,
        new_dims.width,
        new_dims.height,
    )
    return template.model_copy(
        update={
            "background_image": source,
            "canvas_dimensions": new_dims,
            "elements": elements,
            "updated_at": datetime.now(),
        }
    )
