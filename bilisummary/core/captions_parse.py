"""
Subtitle JSON body -> cues, plain text and ASS captions.
Bilibili serves subtitles as {"body": [{"from": 0.0, "to": 2.5, "content": "..."}]}.
"""

import logging

from bilisummary.core.models import SubtitleCue

logger = logging.getLogger(__name__)

_ASS_HEADER = """[Script Info]
Title: {title}
ScriptType: v4.00+
PlayResX: 1920
PlayResY: 1080

[V4+ Styles]
Format: Name, Fontname, Fontsize, PrimaryColour, SecondaryColour, OutlineColour, BackColour, Bold, Italic, Underline, StrikeOut, ScaleX, ScaleY, Spacing, Angle, BorderStyle, Outline, Shadow, Alignment, MarginL, MarginR, MarginV, Encoding
Style: Default,Arial,48,&H00FFFFFF,&H000000FF,&H00000000,&H80000000,0,0,0,0,100,100,0,0,1,2,1,2,10,10,10,1

[Events]
Format: Layer, Start, End, Style, Name, MarginL, MarginR, MarginV, Effect, Text"""


def parse_subtitle_body(payload) -> list[SubtitleCue]:
    """
    Convert a downloaded subtitle document to ordered cues.
    Entries missing a timestamp or with blank content are dropped.
    """
    if not isinstance(payload, dict):
        return []

    cues = []
    for item in payload.get('body') or []:
        if not isinstance(item, dict):
            continue
        content = str(item.get('content') or '').strip()
        if not content:
            continue
        try:
            start = float(item['from'])
            end = float(item['to'])
        except (KeyError, TypeError, ValueError):
            logger.debug("Skipping malformed cue: %r", item)
            continue
        cues.append(SubtitleCue(start=start, end=end, text=content))

    return cues


def cues_to_text(cues) -> str:
    return '\n'.join(c.text for c in cues)


def ass_time(seconds: float) -> str:
    """Seconds -> ASS timestamp H:MM:SS.CC"""
    seconds = max(0.0, seconds)
    h = int(seconds // 3600)
    m = int((seconds % 3600) // 60)
    s = seconds % 60
    return f"{h}:{m:02d}:{s:05.2f}"


def generate_ass(title: str, cues) -> str:
    lines = [_ASS_HEADER.format(title=title)]
    for cue in cues:
        text = cue.text.replace('\n', '\\N')
        lines.append(
            f"Dialogue: 0,{ass_time(cue.start)},{ass_time(cue.end)},Default,,0,0,0,,{text}")
    return '\n'.join(lines)
