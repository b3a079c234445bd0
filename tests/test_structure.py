import json
import unittest

from notes_pipeline.errors import MalformedResponse, TransportFailure
from notes_pipeline.parsing import parse_outline, strip_code_fences
from notes_pipeline.structure import FALLBACK_OUTLINE, StructureExtractor

from tests.fakes import VALID_OUTLINE_REPLY, FakeCompletionService


class TestParseOutline(unittest.TestCase):
    def test_valid_reply_gets_stable_module_ids(self) -> None:
        result = parse_outline(VALID_OUTLINE_REPLY)

        self.assertTrue(result.ok)
        self.assertIsNone(result.error)
        self.assertEqual(result.outline.title, "光合作用")
        self.assertEqual([m.id for m in result.outline.modules], ["m0", "m1"])
        self.assertEqual(result.outline.modules[1].heading, "暗反应")

    def test_keyword_lists_are_joined(self) -> None:
        reply = json.dumps(
            {"title": "t", "visual_theme_keywords": ["sun", "leaf"], "modules": [{"heading": "h"}]}
        )

        outline = parse_outline(reply).outline

        self.assertEqual(outline.visual_theme_keywords, "sun, leaf")
        self.assertEqual(outline.modules[0].content, "")

    def test_rejections_are_returned_not_raised(self) -> None:
        for reply in ["not json", "{}", "[]", '{"modules": []}', '{"modules": ["x"]}', ""]:
            with self.subTest(reply=reply):
                result = parse_outline(reply)
                self.assertFalse(result.ok)
                self.assertIsNotNone(result.error)

    def test_non_string_reply_is_rejected(self) -> None:
        for reply in [[{"type": "text", "text": "{}"}], {"modules": []}, 42]:
            with self.subTest(reply=reply):
                result = parse_outline(reply)
                self.assertFalse(result.ok)
                self.assertIsInstance(result.error, MalformedResponse)

    def test_strip_code_fences(self) -> None:
        self.assertEqual(strip_code_fences('```JSON\n{"a": 1}\n```'), '{"a": 1}')
        self.assertEqual(strip_code_fences(None), "")


class TestStructureExtractor(unittest.IsolatedAsyncioTestCase):
    async def test_extracts_outline_from_fenced_reply(self) -> None:
        service = FakeCompletionService(["```json\n" + VALID_OUTLINE_REPLY + "\n```"])

        outline = await StructureExtractor(service).extract("植物的光合作用……")

        self.assertEqual(outline.title, "光合作用")
        self.assertEqual(len(outline.modules), 2)
        self.assertIn("植物的光合作用……", service.calls[0])

    async def test_malformed_json_yields_fallback_outline(self) -> None:
        outline = await StructureExtractor(FakeCompletionService(["not json"])).extract("text")

        self.assertEqual(outline.title, "解析失败")
        self.assertEqual(len(outline.modules), 1)
        self.assertIs(outline, FALLBACK_OUTLINE)

    async def test_empty_object_yields_fallback_outline(self) -> None:
        outline = await StructureExtractor(FakeCompletionService(["{}"])).extract("text")

        self.assertEqual(outline, FALLBACK_OUTLINE)

    async def test_non_string_reply_yields_fallback_outline(self) -> None:
        service = FakeCompletionService([[{"type": "text", "text": VALID_OUTLINE_REPLY}]])

        self.assertIs(await StructureExtractor(service).extract("text"), FALLBACK_OUTLINE)

    async def test_transport_failure_propagates(self) -> None:
        service = FakeCompletionService([TransportFailure("timed out")])

        with self.assertRaises(TransportFailure):
            await StructureExtractor(service).extract("text")


if __name__ == "__main__":
    unittest.main()
