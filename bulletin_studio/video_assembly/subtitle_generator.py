from pathlib import Path
from typing import Any, Iterable, List, Optional, Union

ASS_HEADER = """[Script Info]
ScriptType: v4.00+
PlayResX: {width}
PlayResY: {height}
WrapStyle: 0

[V4+ Styles]
Format: Name, Fontname, Fontsize, PrimaryColour, SecondaryColour, OutlineColour, BackColour, Bold, Italic, Underline, StrikeOut, ScaleX, ScaleY, Spacing, Angle, BorderStyle, Outline, Shadow, Alignment, MarginL, MarginR, MarginV, Encoding
Style: Default,DejaVu Sans,48,&H00FFFFFF,&H000000FF,&H00000000,&H80000000,-1,0,0,0,100,100,0,0,3,2,0,2,40,40,180,1

[Events]
Format: Layer, Start, End, Style, Name, MarginL, MarginR, MarginV, Effect, Text
"""


def _field(cue: Any, name: str, default: Any = None) -> Any:
    if isinstance(cue, dict):
        return cue.get(name, default)
    return getattr(cue, name, default)


def format_ass_time(seconds: float) -> str:
    """H:MM:SS.CS, centiseconds truncated"""
    h = int(seconds // 3600)
    m = int((seconds % 3600) // 60)
    s = int(seconds % 60)
    cs = int((seconds % 1) * 100)
    return f"{h:d}:{m:02d}:{s:02d}.{cs:02d}"


def scale_cues(cues: Iterable[Any], actual_duration: float) -> List[tuple]:
    """
    Rescale cue timings from the estimated script length to the real
    narration length. Returns (start, end, text) tuples.
    """
    cues = list(cues)
    if not cues:
        return []

    estimated_end = max(float(_field(c, "end", 0) or 0) for c in cues)
    if estimated_end <= 0:
        estimated_end = 1.0
    scale = actual_duration / estimated_end

    return [
        (float(_field(c, "start", 0) or 0) * scale,
         float(_field(c, "end", 0) or 0) * scale,
         str(_field(c, "text", "") or ""))
        for c in cues
    ]


class SubtitleGenerator:
    """Writes ASS subtitle tracks for studio narration"""

    def __init__(self, width: int = 1080, height: int = 1920):
        self.width = width
        self.height = height

    def generate(self, cues: Iterable[Any], actual_duration: float,
                 output_path: Union[str, Path]) -> Optional[Path]:
        scaled = scale_cues(cues, actual_duration)
        if not scaled:
            return None

        lines = [ASS_HEADER.format(width=self.width, height=self.height)]
        for start, end, text in scaled:
            text = text.replace("\n", "\\N")
            lines.append(f"Dialogue: 0,{format_ass_time(start)},{format_ass_time(end)},Default,,0,0,0,,{text}\n")

        output_path = Path(output_path)
        output_path.parent.mkdir(parents=True, exist_ok=True)
        with open(output_path, 'w', encoding='utf-8') as f:
            f.write("".join(lines))
        return output_path
