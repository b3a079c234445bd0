import unittest

from notes_pipeline.models import ContentModule, NoteOutline, VisualSettings
from notes_pipeline.prompts import (
    DEFAULT_KEYWORDS,
    DEFAULT_PALETTE,
    DEFAULT_TITLE,
    STYLES,
    STYLES_BY_ID,
    synthesize_prompt,
)


OUTLINE = NoteOutline(
    title="光合作用",
    summary_context="植物如何把光变成能量",
    visual_theme_keywords="leaves, sunlight",
    modules=(
        ContentModule(id="m0", heading="光反应", content="类囊体; 产生ATP"),
        ContentModule(id="m1", heading="暗反应", content="卡尔文循环"),
    ),
)


class TestSynthesizePrompt(unittest.TestCase):
    def test_identical_inputs_give_identical_prompts(self) -> None:
        settings = VisualSettings(style_id="tech", color_theme="", watermark="@notes")
        first = synthesize_prompt(OUTLINE, settings)
        second = synthesize_prompt(
            NoteOutline(
                title="光合作用",
                summary_context="植物如何把光变成能量",
                visual_theme_keywords="leaves, sunlight",
                modules=tuple(ContentModule(m.id, m.heading, m.content) for m in OUTLINE.modules),
            ),
            VisualSettings(style_id="tech", color_theme="", watermark="@notes"),
        )
        self.assertEqual(first.encode("utf-8"), second.encode("utf-8"))

    def test_watermark_only_changes_trailing_clause(self) -> None:
        a = synthesize_prompt(OUTLINE, VisualSettings(watermark="alpha"))
        b = synthesize_prompt(OUTLINE, VisualSettings(watermark="beta"))

        a_body, a_tail = a.rsplit("\n", 1)
        b_body, b_tail = b.rsplit("\n", 1)
        self.assertEqual(a_body, b_body)
        self.assertEqual(a_tail, 'Footer Watermark: "alpha"')
        self.assertEqual(b_tail, 'Footer Watermark: "beta"')

    def test_content_section_numbers_modules_in_order(self) -> None:
        prompt = synthesize_prompt(OUTLINE, VisualSettings())

        self.assertIn('Title: "光合作用"', prompt)
        self.assertIn('Subtitle: "植物如何把光变成能量"', prompt)
        self.assertIn('1. Heading: "光反应"\n   Content: "类囊体; 产生ATP"', prompt)
        self.assertIn('2. Heading: "暗反应"', prompt)
        self.assertLess(prompt.index("光反应"), prompt.index("暗反应"))
        self.assertIn('related to "leaves, sunlight"', prompt)

    def test_missing_fields_use_defaults(self) -> None:
        prompt = synthesize_prompt(NoteOutline(), VisualSettings())

        self.assertIn(f'Title: "{DEFAULT_TITLE}"', prompt)
        self.assertIn(DEFAULT_KEYWORDS, prompt)
        self.assertIn(DEFAULT_PALETTE, prompt)
        self.assertTrue(prompt.endswith('Footer Watermark: ""'))

    def test_color_theme_overrides_default_palette(self) -> None:
        prompt = synthesize_prompt(OUTLINE, VisualSettings(color_theme="Forest greens"))

        self.assertIn("Color palette: Forest greens", prompt)
        self.assertNotIn(DEFAULT_PALETTE, prompt)

    def test_style_selection_and_unknown_style(self) -> None:
        zen = synthesize_prompt(OUTLINE, VisualSettings(style_id="zen"))
        unknown = synthesize_prompt(OUTLINE, VisualSettings(style_id="does-not-exist"))

        self.assertIn(STYLES_BY_ID["zen"].description, zen)
        self.assertIn(STYLES[0].description, unknown)


if __name__ == "__main__":
    unittest.main()
