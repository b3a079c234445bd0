"""
Prompt synthesis for the image model.

`synthesize_prompt` is a pure function of (outline, settings): identical inputs
produce byte-identical output, and the watermark clause is always the last line.
"""

from dataclasses import dataclass
from typing import Dict, Tuple

from .models import NoteOutline, VisualSettings


@dataclass(frozen=True)
class StyleOption:
    id: str
    name: str
    description: str


STYLES: Tuple[StyleOption, ...] = (
    StyleOption(
        "healing",
        "可爱手帐 (Cute Journal)",
        "Hand-drawn grid paper background, pastel markers, dense text notes, cute stickers, "
        "kawaii study-note aesthetic",
    ),
    StyleOption(
        "tech",
        "极客蓝图 (Tech Blueprint)",
        "Dark blue blueprint background, neon cyan lines, dense data visualization, "
        "holographic UI elements, futuristic technical schematic",
    ),
    StyleOption(
        "retro",
        "复古海报 (Retro Poster)",
        "Vintage paper texture, bold typography, densely packed layout, pop-art halftone "
        "patterns, collage infographic poster",
    ),
    StyleOption(
        "zen",
        "新中式 (Zen Ink)",
        "White rice paper texture, minimalist ink wash painting, black calligraphy, "
        "vertical layout, red seal, intellectual aesthetic",
    ),
    StyleOption(
        "clay",
        "3D粘土 (3D Clay)",
        "3D rendered claymorphism, plasticine texture, soft lighting, rounded edges, "
        "playful toy-like look, flat text labels on clay surfaces",
    ),
)

STYLES_BY_ID: Dict[str, StyleOption] = {s.id: s for s in STYLES}

DEFAULT_TITLE = "未命名笔记"
DEFAULT_KEYWORDS = "abstract concepts"
DEFAULT_PALETTE = "Pastel low-saturation colors (Macaron Blue, Cream Yellow, Soft Pink)"

_ROLE = (
    "Role: You are an expert information designer who turns complex material into "
    "clean, organized and readable educational sketchnotes (\"Visual Notes\")."
)

_TEXT_RULES = """# TEXT RENDERING RULES (highest priority)
1. Font: bold sans-serif or clean handwriting (like Kaiti / Heiti). No cursive, calligraphy or messy strokes; characters blocky and distinct.
2. Containers: every main text block sits inside a solid text bubble or rectangle (white or very light pastel fill) for maximum contrast with the background.
3. Legibility over style: characters sharp, high-contrast and fully formed.
4. Language: Simplified Chinese with correct stroke counts. No Japanese kana.
5. Hierarchy: title very large and centered at the top; numbered headers large and bold; body text medium with clear bullet points."""

_LAYOUT_RULES = """# LAYOUT & COMPOSITION
- Grid: modular bento-box layout with clear, non-overlapping sections for the main points, plus a title area and a footer.
- Flow: hand-drawn dotted arrows guide the eye through the sections in order.

# OUTPUT SPECS
- Ratio: 3:4 (vertical long chart)
- Resolution: high definition, vector-like sharpness"""


def resolve_style(style_id: str) -> StyleOption:
    return STYLES_BY_ID.get(style_id, STYLES[0])


def synthesize_prompt(outline: NoteOutline, settings: VisualSettings) -> str:
    style = resolve_style(settings.style_id)
    title = outline.title or DEFAULT_TITLE
    keywords = outline.visual_theme_keywords or DEFAULT_KEYWORDS
    palette = settings.color_theme or DEFAULT_PALETTE

    modules = "\n".join(
        f'{i}. Heading: "{m.heading}"\n   Content: "{m.content}"'
        for i, m in enumerate(outline.modules, start=1)
    )

    sections = [
        _ROLE,
        "",
        f"# VISUAL STYLE: {style.name}",
        f"- Core aesthetic: {style.description}. Flat vector illustration, clean lines, no blurring.",
        "- Background: light beige (#F5F5DC) or a light style-appropriate background with a "
        "faint dot grid. Keep it clean so it never fights the text.",
        f"- Color palette: {palette} + dark charcoal (#333333) for all text.",
        f'- Decorations: simple flat 2D icons and subtle doodles related to "{keywords}", '
        "placed around text boxes, never behind text.",
        "",
        _TEXT_RULES,
        "",
        _LAYOUT_RULES,
        "",
        "# CONTENT (render exactly as structured below)",
        f'Title: "{title}"',
        f'Subtitle: "{outline.summary_context}"',
        "Modules:",
        modules,
        "",
        f'Footer Watermark: "{settings.watermark}"',
    ]
    return "\n".join(sections)
