"""
Slide HTML builder.

Renders a SlideRenderModel into a self-contained HTML document for the
headless browser. The slide is designed on a 1080x1080 canvas and scaled
to cover the export size.

Passes:
- FULL: everything, opaque
- BACKGROUND: background color, image(s) and gradient; no text or chrome
- OVERLAY: text and chrome only, on a transparent base
"""

from dataclasses import dataclass, field
from enum import Enum
from html import escape
from typing import Optional

from slidekit.schemas import ImageDisplay, SlideRenderModel, TextBlock
from slidekit.services.highlights import parse_inline_formatting

DESIGN_SIZE = 1080
ROOT_SELECTOR = ".slide-wrap"

# Hook slide second image: round inset with a thick border
HOOK_CIRCLE_SIZE = 200
HOOK_CIRCLE_BORDER = 14
HOOK_CIRCLE_INSET = 56

FRAME_WIDTHS = {"none": 0, "thin": 2, "medium": 5, "thick": 10, "chunky": 16, "heavy": 20}
POSITION_TO_CSS = {
    "center": "center center", "top": "center top", "bottom": "center bottom",
    "left": "left center", "right": "right center",
    "top-left": "left top", "top-right": "right top",
    "bottom-left": "left bottom", "bottom-right": "right bottom",
}
WATERMARK_CLASSES = {"top_left": "tl", "top_right": "tr", "bottom_left": "bl", "bottom_right": "br"}
SWIPE_GLYPHS = {"chevrons": "›››", "arrow": "→", "text": "SWIPE"}


class RenderPass(str, Enum):
    FULL = "full"
    BACKGROUND = "background"
    OVERLAY = "overlay"


@dataclass
class HtmlOptions:
    highlight_styles: dict[str, str] = field(default_factory=dict)
    image_display: Optional[ImageDisplay] = None


def _hex_to_rgba(hex_color: str, opacity: float) -> str:
    value = hex_color.lstrip("#")
    if len(value) == 3:
        value = "".join(c * 2 for c in value)
    try:
        r, g, b = int(value[0:2], 16), int(value[2:4], 16), int(value[4:6], 16)
    except ValueError:
        r = g = b = 0
    return f"rgba({r},{g},{b},{opacity})"


def _css_url(url: str) -> str:
    return escape(url.replace("'", "%27").replace("\\", "%5C"))


def cover_transform(width: int, height: int) -> tuple[float, float, float]:
    """(scale, translate_x, translate_y) placing the 1080 design so it covers width x height."""
    scale = (height if height > width else width) / DESIGN_SIZE
    scaled = DESIGN_SIZE * scale
    return scale, (width - scaled) / 2, (height - scaled) / 2


def line_to_html(line: str, highlight_style: str = "text") -> str:
    parts = []
    for seg in parse_inline_formatting(line):
        text = escape(seg.text)
        if seg.type == "bold":
            parts.append(f"<strong>{text}</strong>")
        elif seg.type == "color" and seg.color:
            color = escape(seg.color)
            if highlight_style == "background":
                parts.append(
                    f'<span class="hl-bg" style="background-color:{color}">{text}</span>'
                )
            else:
                parts.append(f'<span style="color:{color}">{text}</span>')
        else:
            parts.append(text)
    return "".join(parts)


def _text_block_html(block: TextBlock, text_color: str, highlight_style: str) -> str:
    zone = block.zone
    color = escape(zone.color or text_color)
    lines = "".join(f'<span class="line">{line_to_html(line, highlight_style) or "&nbsp;"}</span>' for line in block.lines)
    return (
        f'<div class="text-block" data-zone="{escape(zone.id)}" style="left:{zone.x}px;top:{zone.y}px;'
        f"width:{zone.w}px;height:{zone.h}px;font-size:{zone.font_size}px;font-weight:{zone.font_weight};"
        f'line-height:{zone.line_height};text-align:{zone.align};color:{color}">{lines}</div>'
    )


def _gradient_css(model: SlideRenderModel) -> str:
    bg = model.background
    if not bg.use_gradient:
        return "none"
    rgba = _hex_to_rgba(bg.gradient_color, bg.gradient_strength)
    extent = max(0.0, min(100.0, bg.gradient_extent))
    solid = max(0.0, min(100.0, bg.gradient_solid_size))
    start = 100 - extent
    solid_from = 100 - extent * solid / 100
    return (
        f"linear-gradient(to {bg.gradient_direction}, transparent 0%, transparent {start:g}%, "
        f"{rgba} {solid_from:g}%, {rgba} 100%)"
    )


def _single_image_html(url: str, display: ImageDisplay) -> str:
    frame = display.frame or "none"
    frame_w = FRAME_WIDTHS.get(frame, 0)
    pos = POSITION_TO_CSS.get(display.position, "center center")
    image_style = f"background-image:url('{_css_url(url)}');background-size:{display.fit};background-position:{pos};"
    if frame_w > 0:
        radius = display.frame_radius if display.frame_radius is not None else 24
        frame_color = escape(display.frame_color or "#ffffff")
        box = (
            f"left:16px;top:16px;width:{DESIGN_SIZE - 32}px;height:{DESIGN_SIZE - 32}px;"
            f"border-radius:{radius}px;border:{frame_w}px solid {frame_color};box-shadow:0 8px 32px rgba(0,0,0,0.3);"
        )
    else:
        box = f"left:0;top:0;width:{DESIGN_SIZE}px;height:{DESIGN_SIZE}px;"
    return f'<div class="slide-bg-image" style="{box}{image_style}"></div>'


def _multi_image_html(urls: list[str], display: ImageDisplay) -> str:
    count = len(urls)
    layout = display.layout
    gap = display.gap if display.gap is not None else 8
    frame_w = FRAME_WIDTHS.get(display.frame or "none", 0)
    radius = display.frame_radius if display.frame_radius is not None else 0
    frame_color = escape(display.frame_color or "#ffffff")
    pos = POSITION_TO_CSS.get(display.position, "center center")
    pad = 16 if frame_w > 0 else gap
    inner = DESIGN_SIZE - pad * 2

    stacked = layout == "stacked"
    grid = layout == "grid" or (layout == "auto" and count == 4)
    if stacked:
        cols, rows = 1, count
    elif grid:
        cols, rows = 2, (count + 1) // 2
    else:
        cols, rows = count, 1
    item_w = (inner - gap * (cols - 1)) // cols
    item_h = (inner - gap * (rows - 1)) // rows

    border = f"border:{frame_w}px solid {frame_color};" if frame_w > 0 else ""
    items = "".join(
        f'<div class="slide-bg-item" style="width:{item_w}px;height:{item_h}px;border-radius:{radius}px;{border}'
        f"background-image:url('{_css_url(url)}');background-size:{display.fit};background-position:{pos}\"></div>"
        for url in urls
    )
    direction = "column" if stacked else "row"
    return (
        f'<div class="slide-bg-grid" style="left:{pad}px;top:{pad}px;width:{inner}px;height:{inner}px;'
        f'flex-direction:{direction};gap:{gap}px">{items}</div>'
    )


def _hook_circle_html(url: str) -> str:
    return (
        f'<div class="slide-hook-circle" style="right:{HOOK_CIRCLE_INSET}px;bottom:{HOOK_CIRCLE_INSET}px;'
        f"width:{HOOK_CIRCLE_SIZE}px;height:{HOOK_CIRCLE_SIZE}px;border:{HOOK_CIRCLE_BORDER}px solid rgba(255,255,255,0.95);"
        f"background-image:url('{_css_url(url)}')\"></div>"
    )


def _chrome_html(model: SlideRenderModel, text_color: str) -> str:
    chrome = model.chrome
    color = escape(text_color)
    parts = []
    if chrome.show_counter and chrome.counter_text:
        parts.append(f'<div class="chrome-counter" style="color:{color}">{escape(chrome.counter_text)}</div>')

    wm = chrome.watermark
    if wm.enabled and (wm.text or wm.logo_url):
        content = ""
        if wm.logo_url:
            content += f'<img class="chrome-logo" src="{escape(wm.logo_url)}" alt="">'
        if wm.text:
            content += f"<span>{escape(wm.text)}</span>"
        if wm.position == "custom":
            style = f"left:{wm.logo_x or 24}px;top:{wm.logo_y or 24}px;color:{color}"
            parts.append(f'<div class="chrome-watermark" style="{style}">{content}</div>')
        else:
            css_class = WATERMARK_CLASSES.get(wm.position, "bl")
            parts.append(f'<div class="chrome-watermark {css_class}" style="color:{color}">{content}</div>')

    if chrome.show_swipe:
        glyph = SWIPE_GLYPHS.get(chrome.swipe_type, SWIPE_GLYPHS["chevrons"])
        parts.append(f'<div class="chrome-swipe" style="color:{color}">{escape(glyph)}</div>')
    return "".join(parts)


def render_slide_html(
    model: SlideRenderModel,
    *,
    width: int = DESIGN_SIZE,
    height: int = DESIGN_SIZE,
    pass_: RenderPass = RenderPass.FULL,
    options: Optional[HtmlOptions] = None,
) -> str:
    """Full HTML document for one slide at width x height."""
    options = options or HtmlOptions()
    display = options.image_display or ImageDisplay()
    bg = model.background

    show_background = pass_ is not RenderPass.OVERLAY
    show_foreground = pass_ is not RenderPass.BACKGROUND

    base_color = escape(bg.background_color) if show_background else "transparent"
    urls = bg.background_image_urls or ([bg.background_image_url] if bg.background_image_url else [])

    layers = []
    if show_background:
        if len(urls) >= 2:
            layers.append(_multi_image_html(urls, display))
        elif urls:
            layers.append(_single_image_html(urls[0], display))
        layers.append(f'<div class="slide-gradient" style="background:{_gradient_css(model)}"></div>')
        if model.slide_type == "hook" and bg.secondary_image_url and len(urls) <= 1:
            layers.append(_hook_circle_html(bg.secondary_image_url))
    if show_foreground:
        for block in model.text_blocks:
            style = options.highlight_styles.get(block.zone.id, "text")
            layers.append(_text_block_html(block, bg.text_color, style))
        layers.append(_chrome_html(model, bg.text_color))

    scale, tx, ty = cover_transform(width, height)
    body = "\n    ".join(layer for layer in layers if layer)

    return f"""<!DOCTYPE html>
<html lang="en">
<head>
  <meta charset="utf-8">
  <meta name="viewport" content="width={width}, height={height}">
  <style>
    * {{ margin: 0; padding: 0; box-sizing: border-box; border: none; }}
    html, body {{ width: {width}px; height: {height}px; overflow: hidden; background: {base_color}; }}
    body {{ font-family: -apple-system, BlinkMacSystemFont, "Segoe UI", Roboto, "Helvetica Neue", Arial, sans-serif; }}
    .slide-wrap {{ position: absolute; left: 0; top: 0; width: {width}px; height: {height}px; overflow: hidden; background: {base_color}; }}
    .slide {{ position: absolute; width: {DESIGN_SIZE}px; height: {DESIGN_SIZE}px; left: {tx:g}px; top: {ty:g}px; transform: scale({scale:g}); transform-origin: top left; background: {base_color}; }}
    .slide-bg-image {{ position: absolute; overflow: hidden; }}
    .slide-bg-grid {{ position: absolute; display: flex; flex-wrap: wrap; }}
    .slide-bg-item {{ overflow: hidden; flex-shrink: 0; }}
    .slide-gradient {{ position: absolute; inset: 0; pointer-events: none; }}
    .slide-hook-circle {{ position: absolute; border-radius: 50%; overflow: hidden; background-size: cover; background-position: center; box-shadow: 0 8px 40px rgba(0,0,0,0.4); }}
    .text-block {{ position: absolute; display: flex; flex-direction: column; justify-content: center; }}
    .text-block .line {{ display: block; }}
    .hl-bg {{ color: #0a0a0a; padding: 0.02em 0.04em; margin: 0.04em 0.02em 0.04em 0; line-height: 1; display: inline-block; border-radius: 1px; }}
    .chrome-counter {{ position: absolute; top: 20px; right: 20px; padding: 6px 12px; border-radius: 9999px; background: rgba(255,255,255,0.08); font-size: 20px; font-weight: 500; opacity: 0.85; z-index: 5; }}
    .chrome-watermark {{ position: absolute; display: flex; align-items: center; gap: 8px; opacity: 0.7; font-size: 20px; font-weight: 500; z-index: 5; }}
    .chrome-watermark.tl {{ top: 24px; left: 24px; }}
    .chrome-watermark.tr {{ top: 24px; right: 24px; }}
    .chrome-watermark.bl {{ bottom: 80px; left: 24px; }}
    .chrome-watermark.br {{ bottom: 80px; right: 24px; }}
    .chrome-logo {{ max-height: 48px; max-width: 160px; }}
    .chrome-swipe {{ position: absolute; left: 0; right: 0; bottom: 0; display: flex; justify-content: center; padding: 12px 0; opacity: 0.9; font-size: 24px; font-weight: 600; letter-spacing: 0.1em; z-index: 5; }}
  </style>
</head>
<body>
  <div class="slide-wrap">
  <div class="slide">
    {body}
  </div>
  </div>
</body>
</html>"""
