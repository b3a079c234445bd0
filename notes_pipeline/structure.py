import logging

from .completion import TextCompletionService
from .models import ContentModule, NoteOutline
from .parsing import parse_outline


logger = logging.getLogger(__name__)

FALLBACK_OUTLINE = NoteOutline(
    title="解析失败",
    summary_context="请重试或检查输入",
    visual_theme_keywords="abstract",
    modules=(ContentModule(id="err1", heading="错误", content="无法解析内容，请重试"),),
)

NOTE_CHAR_BUDGET = 350


class StructureExtractor:
    """
    Turns one note's raw text into a `NoteOutline` via the completion service.

    A reply that arrives but cannot be parsed resolves to `FALLBACK_OUTLINE`,
    so the note still reaches review and can be edited or retried by hand.
    Only transport failures propagate to the caller.
    """

    def __init__(self, service: TextCompletionService) -> None:
        self.service = service

    def check_ready(self) -> None:
        self.service.check_ready()

    async def extract(self, text: str) -> NoteOutline:
        logger.info("Structuring note text (%d chars)", len(text))
        raw = await self.service.generate(self._build_prompt(text))
        logger.debug("Structure reply: %s", raw)

        result = parse_outline(raw)
        if not result.ok:
            logger.warning("Structure reply rejected, using fallback outline: %s", result.error)
            return FALLBACK_OUTLINE
        return result.outline

    @staticmethod
    def _build_prompt(text: str) -> str:
        """
        Ask for a compact outline that keeps the source's own structure.

        The model must answer with a single JSON object:
        - title
        - summary_context
        - visual_theme_keywords
        - modules: [{heading, content}, ...]
        """
        return (
            "You are an expert note taker who condenses text into a complete but minimal "
            "structured study note.\n"
            f"- Keep the whole note to about {NOTE_CHAR_BUDGET} characters.\n"
            "- If the text already has numbered points or section headings, keep that "
            "structure and its order. Only regroup loose paragraphs.\n"
            "- Cover every key concept, figure, conclusion and step; use keywords and "
            "short phrases of at most 10 characters.\n"
            "- Produce 3-6 modules unless the source structure dictates otherwise.\n"
            "- Write the note in the language of the input text.\n\n"
            "Return ONLY a valid JSON object with this exact shape and no surrounding commentary:\n"
            "{\n"
            '  "title": "one-line topic",\n'
            '  "summary_context": "very short background summary",\n'
            '  "visual_theme_keywords": "keywords for the background vibe",\n'
            '  "modules": [\n'
            '    {"heading": "string", "content": "point 1; point 2"}\n'
            "  ]\n"
            "}\n\n"
            "Input text:\n"
            f"{text}\n"
        )
