"""
Frame Generator

Builds the static PNG layers used by segment rendering:
- opaque studio frames (background, branding, emoji, poster, headline)
- transparent studio overlays for compositing over the anchor loop
- transparent info-bar overlays for user clips
- opaque weather cards
"""

from pathlib import Path
from typing import Any, Dict, List, Optional, Tuple, Union

from PIL import Image, ImageDraw, ImageFont, ImageOps

from ..utils.logger import LoggerMixin

PathLike = Union[str, Path]
RGBA = Tuple[int, int, int, int]

WHITE: RGBA = (255, 255, 255, 255)
DEFAULT_WEATHER_EMOJI = "\U0001F324️"

SYSTEM_FONTS = {
    False: [
        "/usr/share/fonts/truetype/dejavu/DejaVuSans.ttf",
        "/usr/share/fonts/dejavu/DejaVuSans.ttf",
        "/System/Library/Fonts/Helvetica.ttc",
    ],
    True: [
        "/usr/share/fonts/truetype/dejavu/DejaVuSans-Bold.ttf",
        "/usr/share/fonts/dejavu/DejaVuSans-Bold.ttf",
        "/System/Library/Fonts/Helvetica.ttc",
    ],
}


def _alpha(opacity: float) -> int:
    return int(round(255 * opacity))


class FrameGenerator(LoggerMixin):
    """
    Pillow compositor for bulletin frames.

    Layer order is always background, darkening layer, branding,
    emoji/thumbnail, headline, bottom gradient.
    """

    def __init__(self, config=None):
        render = getattr(config, 'render', None)
        assets = getattr(config, 'assets', None)
        self.width, self.height = render.size if render is not None else (1080, 1920)
        self.branding_text = getattr(assets, 'branding_text', "MOCK NEWS")
        self.font_regular = getattr(assets, 'font_regular', None)
        self.font_bold = getattr(assets, 'font_bold', None)
        self._fonts: Dict[Tuple[int, bool], Any] = {}

    # Public frames

    def story_frame(self, background: Optional[PathLike], poster: Optional[PathLike],
                    emoji: Optional[str], headline: Optional[str], output: PathLike) -> Path:
        """Opaque studio frame used when no anchor loop is available"""
        canvas = self._cover(background)
        canvas = self._darken(canvas, 0.45)
        self._add_branding(canvas)
        self._add_emoji(canvas, emoji)
        self._add_poster(canvas, poster)
        self._add_headline(canvas, headline)
        self._add_gradient(canvas)

        output = self._save(canvas.convert("RGB"), output)
        self.logger.info(f"[FrameGen] Story frame: {output}")
        return output

    def studio_overlay(self, headline: Optional[str], output: PathLike,
                       poster: Optional[PathLike] = None, emoji: Optional[str] = None) -> Path:
        """Transparent overlay composited over the looping anchor video"""
        canvas = self._transparent()
        self._add_branding(canvas)
        if emoji:
            self._add_emoji(canvas, emoji)
        self._add_poster(canvas, poster)
        self._add_headline(canvas, headline)
        self._add_gradient(canvas)

        output = self._save(canvas, output)
        self.logger.info(f"[FrameGen] Studio overlay: {output}")
        return output

    def user_video_overlay(self, headline: Optional[str], output: PathLike) -> Path:
        """Transparent overlay with a bottom info bar for user clips"""
        canvas = self._transparent()
        self._add_branding(canvas)

        bar_height = 200
        bar_top = self.height - bar_height - 160
        bar = Image.new("RGBA", (self.width, bar_height), (0, 0, 0, _alpha(0.6)))
        canvas.alpha_composite(bar, (0, bar_top))

        text = self._text_box((headline or "").upper(), size=44, box=(self.width - 80, bar_height),
                              bold=True)
        canvas.alpha_composite(text, (40, bar_top))

        output = self._save(canvas, output)
        self.logger.info(f"[FrameGen] User video overlay: {output}")
        return output

    def weather_frame(self, background: Optional[PathLike], weather_data: Optional[Dict[str, Any]],
                      output: PathLike) -> Path:
        """Opaque weather card from the bulletin's weather payload"""
        canvas = self._cover(background)
        canvas = self._darken(canvas, 0.5)
        self._add_branding(canvas)

        weather_data = weather_data or {}
        report = weather_data.get("report") or {}
        narration = weather_data.get("narration") or {}
        current = report.get("current") or {}

        emoji = narration.get("weatherEmoji") or DEFAULT_WEATHER_EMOJI
        temp = current.get("temp_c")
        temp_str = f"{round(float(temp))}°C" if temp is not None else ""
        headline = narration.get("weatherHeadline") or "Weather"
        summary = current.get("summary") or ""

        layers = [
            (self._text_box(emoji, size=160, box=(300, 300)), 400),
            (self._text_box(temp_str, size=120, box=(500, 200), bold=True), 700),
            (self._text_box(summary, size=40, box=(self.width - 120, 100),
                            color=(255, 255, 255, _alpha(0.8))), 880),
            (self._text_box(headline, size=36, box=(self.width - 120, 80),
                            color=(255, 255, 255, _alpha(0.5))), 980),
        ]
        for layer, top in layers:
            canvas.alpha_composite(layer, ((self.width - layer.width) // 2, top))

        self._add_gradient(canvas)

        output = self._save(canvas.convert("RGB"), output)
        self.logger.info(f"[FrameGen] Weather frame: {output}")
        return output

    # Layers

    def _transparent(self) -> Image.Image:
        return Image.new("RGBA", (self.width, self.height), (0, 0, 0, 0))

    def _cover(self, background: Optional[PathLike]) -> Image.Image:
        """Resize-and-crop the background to fill the canvas"""
        if background is None:
            return Image.new("RGBA", (self.width, self.height), (12, 16, 28, 255))
        with Image.open(background) as img:
            fitted = ImageOps.fit(img.convert("RGB"), (self.width, self.height))
        return fitted.convert("RGBA")

    def _darken(self, canvas: Image.Image, opacity: float) -> Image.Image:
        shade = Image.new("RGBA", canvas.size, (0, 0, 0, _alpha(opacity)))
        return Image.alpha_composite(canvas, shade)

    def _add_branding(self, canvas: Image.Image) -> None:
        branding = self._text_box(self.branding_text, size=36, box=(400, 60), bold=True,
                                  color=(255, 255, 255, _alpha(0.7)), align="left")
        canvas.alpha_composite(branding, (40, 80))

    def _add_emoji(self, canvas: Image.Image, emoji: Optional[str]) -> None:
        box = self._text_box(emoji or "", size=120, box=(200, 200))
        top = (self.height - box.height) // 2 - self.height // 8
        canvas.alpha_composite(box, (100, top))

    def _add_poster(self, canvas: Image.Image, poster: Optional[PathLike]) -> None:
        if not poster or not Path(poster).exists():
            return
        with Image.open(poster) as img:
            thumb = ImageOps.fit(img.convert("RGBA"), (352, 352))
        left = self.width - thumb.width - 100
        top = (self.height - thumb.height) // 2 - self.height // 8
        canvas.alpha_composite(thumb, (left, top))

    def _add_headline(self, canvas: Image.Image, headline: Optional[str]) -> None:
        if not headline:
            return
        box = self._text_box((headline or "").upper(), size=52, box=(self.width - 80, 200),
                             bold=True, background=(0, 0, 0, _alpha(0.6)))
        canvas.alpha_composite(box, ((self.width - box.width) // 2, self.height - box.height - 280))

    def _add_gradient(self, canvas: Image.Image, height: int = 400) -> None:
        """Bottom gradient, transparent at the top edge and 0.8 black at the bottom"""
        gradient = Image.new("RGBA", (self.width, height))
        draw = ImageDraw.Draw(gradient)
        for y in range(height):
            draw.line([(0, y), (self.width, y)], fill=(0, 0, 0, _alpha(0.8 * y / (height - 1))))
        canvas.alpha_composite(gradient, (0, self.height - height))

    # Text

    def _font(self, size: int, bold: bool = False):
        key = (size, bold)
        if key in self._fonts:
            return self._fonts[key]

        configured = self.font_bold if bold else self.font_regular
        candidates = ([configured] if configured else []) + SYSTEM_FONTS[bold]
        font = None
        for path in candidates:
            try:
                font = ImageFont.truetype(path, size)
                break
            except OSError:
                continue

        if font is None:
            try:
                font = ImageFont.load_default(size=size)
            except TypeError:
                # Pillow < 10.1 has no sized default font
                font = ImageFont.load_default()

        self._fonts[key] = font
        return font

    def _wrap(self, draw: ImageDraw.ImageDraw, text: str, font, max_width: int) -> List[str]:
        lines: List[str] = []
        current = ""
        for word in text.split():
            candidate = f"{current} {word}".strip()
            if current and draw.textlength(candidate, font=font) > max_width:
                lines.append(current)
                current = word
            else:
                current = candidate
        if current:
            lines.append(current)
        return lines

    def _fit_lines(self, draw: ImageDraw.ImageDraw, text: str, size: int, bold: bool,
                   max_width: int, max_height: int) -> Tuple[Any, List[str], int]:
        """
        Shrink the font until the wrapped text fits the box height.

        Below half the requested size the font stops shrinking and the
        overflowing lines are cut, the last kept line ending in an ellipsis.
        """
        min_size = min(size, max(12, size // 2))
        while True:
            font = self._font(size, bold)
            lines = self._wrap(draw, text, font, max_width) or [text]
            line_height = int(size * 1.2)
            if line_height * len(lines) <= max_height or size <= min_size:
                break
            size = max(min_size, size - 4)

        max_lines = max(1, max_height // line_height)
        if len(lines) > max_lines:
            lines = lines[:max_lines]
            lines[-1] = lines[-1].rstrip(" .,") + "…"
        return font, lines, line_height

    def _text_box(self, text: str, size: int, box: Tuple[int, int], bold: bool = False,
                  color: RGBA = WHITE, background: RGBA = (0, 0, 0, 0),
                  align: str = "center") -> Image.Image:
        """Render text centered (or left-aligned) inside a fixed-size RGBA box"""
        width, height = box
        img = Image.new("RGBA", (width, height), background)
        if not text:
            return img

        draw = ImageDraw.Draw(img)
        font, lines, line_height = self._fit_lines(draw, str(text), size, bold, width - 20, height)
        top = max(0, (height - line_height * len(lines)) // 2)

        for i, line in enumerate(lines):
            line_width = draw.textlength(line, font=font)
            left = 0 if align == "left" else (width - line_width) / 2
            draw.text((left, top + i * line_height), line, font=font, fill=color)
        return img

    def _save(self, image: Image.Image, output: PathLike) -> Path:
        output = Path(output)
        output.parent.mkdir(parents=True, exist_ok=True)
        image.save(output, "PNG")
        return output
