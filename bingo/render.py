"""Board image and text summary for one team.

Both functions only read the state. The image is laid out on a fixed grid
with no randomness, so the same state always produces the same PNG bytes.
"""

import math
from functools import lru_cache
from io import BytesIO

from PIL import Image, ImageDraw, ImageFont

from . import settings
from .progress import DONE, IN_PROGRESS, entry_state, progress_badge

CELL = 180
GAP = 6
MARGIN = 20
HEADER_H = 110
PAD = 10

BG = (22, 24, 32, 255)
HEADER_TEXT = (245, 240, 225, 255)
SUBTITLE_TEXT = (190, 190, 200, 255)
CELL_TEXT = (240, 240, 240, 255)
INACTIVE_TEXT = (110, 110, 110, 255)
OUTLINE = (12, 12, 16, 255)

CELL_FILL = {
    "inactive": (44, 44, 44, 255),
    "pending": (60, 66, 84, 255),
    "in_progress": (74, 86, 128, 255),
    "done": (38, 112, 64, 255),
    "empty": (32, 34, 44, 255),
}

BADGE_FILL = (250, 204, 64, 255)
BADGE_TEXT = (20, 20, 20, 255)
CHECK_COLOR = (0, 255, 0, 255)


@lru_cache(maxsize=None)
def load_font(size: int):
    candidates = [
        settings.FONT_PATH,
        "DejaVuSans-Bold.ttf",
        "/usr/share/fonts/truetype/dejavu/DejaVuSans-Bold.ttf",
        "Arial Bold.ttf",
    ]
    for path in candidates:
        if not path:
            continue
        try:
            return ImageFont.truetype(path, size)
        except OSError:
            continue
    try:
        return ImageFont.load_default(size=size)
    except TypeError:
        # Older Pillow: fixed-size bitmap font only
        return ImageFont.load_default()


def wrap_text(draw: ImageDraw.ImageDraw, text: str, font, max_width: int) -> list[str]:
    """Greedy word wrap by rendered width. Over-long single words get their own line."""
    lines = []
    current = ""
    for word in text.split():
        candidate = f"{current} {word}" if current else word
        if current and draw.textlength(candidate, font=font) > max_width:
            lines.append(current)
            current = word
        else:
            current = candidate
    if current:
        lines.append(current)
    return lines


def _cell_state(tile, entry) -> str:
    if tile.inactive:
        return "inactive"
    state = entry_state(entry)
    if state == DONE:
        return "done"
    if state == IN_PROGRESS:
        return "in_progress"
    return "pending"


def _draw_check(draw, x0, y0):
    # centre-ish of the cell, same stroke shape as the old board art
    size = CELL // 2
    x, y = x0 + CELL // 2, y0 + CELL // 2 + size // 6
    points = [
        (x - size // 3, y),
        (x - size // 12, y + size // 4),
        (x + size // 2, y - size // 2),
    ]
    try:
        draw.line(points, fill=CHECK_COLOR, width=12, joint="curve")
    except TypeError:
        # Older Pillow: 'joint' not supported
        draw.line(points, fill=CHECK_COLOR, width=12)


def _draw_blocked(draw, x0, y0):
    x1, y1 = x0 + CELL, y0 + CELL
    draw.line([(x0 + PAD, y0 + PAD), (x1 - PAD, y1 - PAD)], fill=INACTIVE_TEXT, width=4)
    draw.line([(x0 + PAD, y1 - PAD), (x1 - PAD, y0 + PAD)], fill=INACTIVE_TEXT, width=4)


def _draw_badge(draw, x0, y0, text, font):
    tw = draw.textlength(text, font=font)
    bx1 = x0 + CELL - PAD // 2
    bx0 = bx1 - tw - 12
    by0 = y0 + PAD // 2
    by1 = by0 + 24
    draw.rectangle([bx0, by0, bx1, by1], fill=BADGE_FILL)
    draw.text((bx0 + 6, by0 + 3), text, font=font, fill=BADGE_TEXT)


def render_board(state, team: str, size: int = None, title: str = None) -> BytesIO:
    """PNG of ``team``'s board: header, grid, checkmarks and progress badges."""
    size = size or settings.BOARD_SIZE
    title = title or settings.BOARD_TITLE
    tiles = state.tiles
    bucket = state.completed_by_team.get(team, {})

    rows = max(size, math.ceil(len(tiles) / size))
    width = MARGIN * 2 + size * CELL + (size - 1) * GAP
    height = HEADER_H + rows * CELL + (rows - 1) * GAP + MARGIN

    img = Image.new("RGBA", (width, height), BG)
    draw = ImageDraw.Draw(img)

    title_font = load_font(36)
    team_font = load_font(24)
    cell_font = load_font(18)
    badge_font = load_font(15)

    # ---- Header ----
    tw = draw.textlength(title, font=title_font)
    draw.text(((width - tw) / 2, 18), title, font=title_font, fill=HEADER_TEXT)
    done_count = sum(1 for t in tiles if not t.inactive and entry_state(bucket.get(t.key)) == DONE)
    active_count = sum(1 for t in tiles if not t.inactive)
    subtitle = f"{team}  ·  {done_count}/{active_count} tiles"
    sw = draw.textlength(subtitle, font=team_font)
    draw.text(((width - sw) / 2, 66), subtitle, font=team_font, fill=SUBTITLE_TEXT)

    # ---- Grid ----
    for index in range(rows * size):
        row, col = divmod(index, size)
        x0 = MARGIN + col * (CELL + GAP)
        y0 = HEADER_H + row * (CELL + GAP)

        if index >= len(tiles):
            draw.rectangle([x0, y0, x0 + CELL, y0 + CELL], fill=CELL_FILL["empty"], outline=OUTLINE, width=2)
            continue

        tile = tiles[index]
        entry = bucket.get(tile.key)
        cell_state = _cell_state(tile, entry)
        draw.rectangle([x0, y0, x0 + CELL, y0 + CELL], fill=CELL_FILL[cell_state], outline=OUTLINE, width=2)

        if cell_state == "inactive":
            _draw_blocked(draw, x0, y0)

        text_fill = INACTIVE_TEXT if cell_state == "inactive" else CELL_TEXT
        line_h = 22
        y = y0 + PAD + 26
        for line in wrap_text(draw, tile.name, cell_font, CELL - 2 * PAD):
            lw = draw.textlength(line, font=cell_font)
            draw.text((x0 + (CELL - lw) / 2, y), line, font=cell_font, fill=text_fill)
            y += line_h

        if cell_state == "done":
            _draw_check(draw, x0, y0)
        elif cell_state != "inactive":
            badge = progress_badge(tile, entry)
            if badge:
                _draw_badge(draw, x0, y0, badge, badge_font)

    img_bytes = BytesIO()
    img.save(img_bytes, format="PNG")
    img_bytes.seek(0)
    return img_bytes


def render_summary(state, team: str) -> str:
    """Plain-text completion summary for chat."""
    bucket = state.completed_by_team.get(team, {})
    active = [t for t in state.tiles if not t.inactive]

    done_lines, progress_lines, todo = [], [], []
    for tile in active:
        entry = bucket.get(tile.key)
        st = entry_state(entry)
        if st == DONE:
            by = entry.by or {}
            if by.get("manual"):
                credit = f"marked by {by.get('reporter') or 'an admin'}"
            else:
                credit = f"{by.get('reporter', '?')} ({by.get('itemName', '?')})"
                if by.get("alt"):
                    credit += " [ALT]"
            done_lines.append(f"✅ **{tile.name}** — {credit}")
        elif st == IN_PROGRESS:
            progress_lines.append(f"⏳ **{tile.name}** — {progress_badge(tile, entry)}")
        else:
            todo.append(tile.name)

    lines = [f"📋 __{team}__ — **{len(done_lines)}/{len(active)}** tiles complete"]
    if done_lines:
        lines += ["", *done_lines]
    if progress_lines:
        lines += ["", *progress_lines]
    if todo:
        lines += ["", f"⬜ Not started ({len(todo)}): " + ", ".join(todo)]
    return "\n".join(lines)
