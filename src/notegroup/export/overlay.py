from __future__ import annotations

from pathlib import Path
from typing import Dict, Iterable, List, Optional, Tuple

from PIL import Image, ImageDraw, ImageFont

from ..config import GroupingConfig
from ..models import BoundingBox, Group, GroupOrigin, TextFragment

# Color keys for the element types drawn on the overlay
COLOR_KEYS = [
    "fragments",
    "ungrouped_fragments",
    "auto_groups",
    "manual_groups",
]

DEFAULT_COLORS: Dict[str, tuple] = {
    "fragments": (128, 128, 128, 200),
    "ungrouped_fragments": (220, 0, 0, 220),
    "auto_groups": (0, 0, 255, 200),
    "manual_groups": (255, 140, 0, 220),
}

# Label prefixes for each group origin
LABEL_PREFIXES = {
    "auto_groups": "G",
    "manual_groups": "M",
}


def _get_color(color_overrides: Optional[Dict[str, tuple]], key: str) -> tuple | None:
    """Color for *key*; an override of ``None`` disables drawing that element."""
    if color_overrides and key in color_overrides:
        return color_overrides[key]
    return DEFAULT_COLORS.get(key)


def _scale_box(box: BoundingBox, scale: float) -> List[Tuple[float, float]]:
    """Scale a box to overlay pixel corners ``[(x0, y0), (x1, y1)]``."""
    return [
        (box.left * scale, box.top * scale),
        (box.right * scale, box.bottom * scale),
    ]


def _load_font(size: int) -> ImageFont.ImageFont:
    try:
        return ImageFont.truetype("arial.ttf", size)
    except OSError:
        return ImageFont.load_default()


def _draw_label(
    draw: ImageDraw.ImageDraw,
    x: float,
    y: float,
    text: str,
    color: tuple,
    font: ImageFont.ImageFont,
) -> None:
    """Draw *text* on a filled tag anchored at the box's top-left corner."""
    bbox = draw.textbbox((x, y), text, font=font)
    draw.rectangle(bbox, fill=color)
    draw.text((x, y), text, fill=(255, 255, 255, 255), font=font)


def _draw_fragments(
    draw: ImageDraw.ImageDraw,
    fragments: Iterable[TextFragment],
    color: tuple | None,
    scale: float,
    width: int,
) -> None:
    if not color:
        return
    for frag in fragments:
        draw.rectangle(_scale_box(frag.bounding_box, scale), outline=color, width=width)


def _draw_groups(
    draw: ImageDraw.ImageDraw,
    groups: List[Group],
    color_overrides: Optional[Dict[str, tuple]],
    scale: float,
    cfg: GroupingConfig,
    font: ImageFont.ImageFont,
) -> None:
    """Draw group outlines colour-coded by origin, numbered per origin."""
    counters = {"auto_groups": 0, "manual_groups": 0}
    for group in groups:
        key = "manual_groups" if group.origin is GroupOrigin.manual else "auto_groups"
        counters[key] += 1
        color = _get_color(color_overrides, key)
        if not color:
            continue
        fill = (color[0], color[1], color[2], cfg.overlay_group_fill_alpha)
        corners = _scale_box(group.bounding_box, scale)
        draw.rectangle(
            corners, fill=fill, outline=color, width=cfg.overlay_group_outline_width
        )
        x0, y0 = corners[0]
        _draw_label(draw, x0, y0, f"{LABEL_PREFIXES[key]}{counters[key]}", color, font)


def render_overlay(
    image_width: float,
    image_height: float,
    fragments: Iterable[TextFragment],
    groups: Iterable[Group],
    scale: float = 1.0,
    background: Image.Image | None = None,
    color_overrides: Optional[Dict[str, tuple]] = None,
    cfg: GroupingConfig | None = None,
) -> Image.Image:
    """Render fragments and groups onto an RGBA image for visual QA.

    Fragments inside no group are outlined in the ``ungrouped_fragments``
    colour.  If *background* is provided it is resized to the overlay size.
    """
    cfg = cfg or GroupingConfig()

    # Materialise iterables once so generators aren't exhausted on re-use.
    fragments = list(fragments)
    groups = list(groups)

    img_w = max(1, int(image_width * scale))
    img_h = max(1, int(image_height * scale))
    if background is not None:
        img = background.convert("RGBA")
        if img.size != (img_w, img_h):
            img = img.resize((img_w, img_h))
    else:
        img = Image.new("RGBA", (img_w, img_h), (255, 255, 255, 255))

    draw = ImageDraw.Draw(img, "RGBA")
    font = _load_font(cfg.overlay_label_font_size)

    grouped_ids = {m.id for g in groups for m in g.members}
    grouped = [f for f in fragments if f.id in grouped_ids]
    ungrouped = [f for f in fragments if f.id not in grouped_ids]

    _draw_fragments(
        draw,
        grouped,
        _get_color(color_overrides, "fragments"),
        scale,
        cfg.overlay_fragment_outline_width,
    )
    _draw_fragments(
        draw,
        ungrouped,
        _get_color(color_overrides, "ungrouped_fragments"),
        scale,
        cfg.overlay_fragment_outline_width,
    )
    _draw_groups(draw, groups, color_overrides, scale, cfg, font)
    return img


def draw_overlay(
    image_width: float,
    image_height: float,
    fragments: Iterable[TextFragment],
    groups: Iterable[Group],
    out_path: Path,
    scale: float = 1.0,
    background: Image.Image | None = None,
    color_overrides: Optional[Dict[str, tuple]] = None,
    cfg: GroupingConfig | None = None,
) -> None:
    """Render with :func:`render_overlay` and save as PNG to *out_path*."""
    img = render_overlay(
        image_width,
        image_height,
        fragments,
        groups,
        scale=scale,
        background=background,
        color_overrides=color_overrides,
        cfg=cfg,
    )
    img.save(out_path, format="PNG")
