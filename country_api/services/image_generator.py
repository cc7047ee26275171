import logging
import os
import tempfile
from pathlib import Path
from typing import Optional, Sequence

import PIL
from PIL import Image, ImageDraw, ImageFont
from sqlalchemy.orm import Session

from country_api import crud

logger = logging.getLogger("country_api.image")

TOP_N = 5


def _text(draw: ImageDraw.ImageDraw, xy, text: str, fill=(34, 34, 34), font=None):
    draw.text(xy, text, fill=fill, font=font)


def _right_text(draw: ImageDraw.ImageDraw, x_right: int, y: int, text: str, fill=(34, 34, 34), font=None):
    bbox = draw.textbbox((0, 0), text, font=font)
    _text(draw, (x_right - (bbox[2] - bbox[0]), y), text, fill=fill, font=font)


def _load_ttf(font_filename: str, size: int):
    base = Path(PIL.__file__).parent
    for p in (base / font_filename, base / "fonts" / font_filename, base.parent / font_filename):
        if p.exists():
            try:
                return ImageFont.truetype(str(p), size)
            except OSError:
                logger.debug("Could not load font %s", p)
    return ImageFont.load_default()


def format_gdp(val: Optional[float]) -> str:
    """Compact money format: 1_250_000 -> $1.2M."""
    if val is None:
        return "-"
    n = float(val)
    for div, suffix in ((1e12, "T"), (1e9, "B"), (1e6, "M"), (1e3, "K")):
        if abs(n) >= div:
            s = f"{n / div:.1f}".rstrip("0").rstrip(".")
            return f"${s}{suffix}"
    return f"${n:,.0f}"


def generate_summary_image(top_countries: Sequence, total: int, timestamp: str, path: str | os.PathLike) -> Path:
    """Draw the summary PNG and atomically replace the file at ``path``.

    Columns: Rank | Country | Estimated GDP
    Header: total countries and last refresh timestamp.
    """
    out = Path(path)
    out.parent.mkdir(parents=True, exist_ok=True)

    W, H = 800, 480
    fg = (34, 34, 34)
    grid = (225, 230, 240)
    accent = (60, 99, 243)

    img = Image.new("RGB", (W, H), color=(255, 255, 255))
    draw = ImageDraw.Draw(img)

    font_title = _load_ttf("DejaVuSans-Bold.ttf", 20)
    font_meta = _load_ttf("DejaVuSans.ttf", 16)
    font_header = _load_ttf("DejaVuSans-Bold.ttf", 16)
    font_cell = _load_ttf("DejaVuSans.ttf", 16)

    margin = 24
    y = margin
    _text(draw, (margin, y), "Country Currency & Exchange Summary", fill=accent, font=font_title)
    y += 30
    _text(draw, (margin, y), f"Total Countries: {total}  |  Last Refresh: {timestamp}", fill=(90, 90, 90), font=font_meta)
    y += 24

    table_top = y + 10
    table_left = margin
    table_right = W - margin
    row_h = 38
    header_h = 40

    col_rank_w = 70
    col_country_w = int((table_right - table_left - col_rank_w) * 0.6)
    col_gdp_w = (table_right - table_left) - col_rank_w - col_country_w
    x_rank = table_left
    x_country = x_rank + col_rank_w
    x_gdp = x_country + col_country_w

    draw.rectangle([table_left, table_top, table_right, table_top + header_h], fill=(245, 247, 250))
    _text(draw, (x_rank + 12, table_top + 11), "#", fill=fg, font=font_header)
    _text(draw, (x_country + 12, table_top + 11), "Country", fill=fg, font=font_header)
    _right_text(draw, x_gdp + col_gdp_w - 12, table_top + 11, "Estimated GDP", fill=fg, font=font_header)
    draw.line([table_left, table_top + header_h, table_right, table_top + header_h], fill=grid, width=1)

    y_row = table_top + header_h
    rows = list(top_countries[:TOP_N])
    for i in range(TOP_N):
        if i % 2 == 0:
            draw.rectangle([table_left, y_row, table_right, y_row + row_h], fill=(252, 253, 255))
        if i < len(rows):
            c = rows[i]
            _text(draw, (x_rank + 12, y_row + 10), str(i + 1), fill=fg, font=font_cell)
            _text(draw, (x_country + 12, y_row + 10), getattr(c, "name", "-") or "-", fill=fg, font=font_cell)
            _right_text(draw, x_gdp + col_gdp_w - 12, y_row + 10, format_gdp(getattr(c, "estimated_gdp", None)), fill=fg, font=font_cell)
        draw.line([table_left, y_row + row_h, table_right, y_row + row_h], fill=grid, width=1)
        y_row += row_h

    draw.rectangle([table_left, table_top, table_right, y_row], outline=grid, width=1)
    if not rows:
        _text(draw, (margin, y_row + 16), "No GDP data available.", fill=(110, 110, 110), font=font_meta)

    # Write to a temp file in the same directory, then swap it in
    fd, tmp = tempfile.mkstemp(suffix=".png", dir=str(out.parent))
    try:
        with os.fdopen(fd, "wb") as fh:
            img.save(fh, format="PNG")
        os.replace(tmp, out)
    except BaseException:
        if os.path.exists(tmp):
            os.remove(tmp)
        raise
    return out


def render_summary_best_effort(db: Session, path: str | os.PathLike, timestamp: str) -> bool:
    """Regenerate the summary image from stored rows; log and swallow any failure."""
    try:
        total = crud.count_countries(db)
        top = crud.top_countries_by_gdp(db, TOP_N)
        generate_summary_image(top, total, timestamp, path)
    except Exception:
        logger.exception("Summary image generation failed; keeping previous image at %s", path)
        return False
    logger.info("Summary image written to %s", path)
    return True
