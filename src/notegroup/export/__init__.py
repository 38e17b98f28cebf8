"""Visual exports of grouping results."""

from .overlay import draw_overlay, render_overlay

__all__ = ["draw_overlay", "render_overlay"]
