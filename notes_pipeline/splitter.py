import logging
from typing import Any, List

from .completion import TextCompletionService
from .errors import ConfigurationError, MalformedResponse, TransportFailure, ValidationRejection
from .parsing import load_json_reply


logger = logging.getLogger(__name__)

MIN_SEGMENT_CHARS = 100


class TextSplitter:
    """
    Decides whether input text should become several notes and splits it.

    The result is always usable: any failure or rejected proposal degrades to
    a single segment holding the original text.
    """

    def __init__(self, service: TextCompletionService, min_segment_chars: int = MIN_SEGMENT_CHARS) -> None:
        self.service = service
        self.min_segment_chars = min_segment_chars

    def check_ready(self) -> None:
        self.service.check_ready()

    async def split(self, text: str) -> List[str]:
        if not text or not text.strip():
            raise ValueError("Cannot split empty text")

        if len(text.strip()) < self.min_segment_chars:
            return [text]

        try:
            raw = await self.service.generate(self._build_prompt(text))
            logger.debug("Split reply: %s", raw)
            segments = self._validate(load_json_reply(raw))
        except TransportFailure as exc:
            logger.warning("Split call failed, keeping text whole: %s", exc)
            return [text]
        except (MalformedResponse, ValidationRejection) as exc:
            logger.warning("Split proposal rejected, keeping text whole: %s", exc)
            return [text]
        except ConfigurationError:
            raise
        except Exception as exc:
            logger.warning("Split call raised %r, keeping text whole", exc)
            return [text]

        logger.info("Split text (%d chars) into %d segment(s)", len(text), len(segments))
        return segments

    def _validate(self, payload: Any) -> List[str]:
        if not isinstance(payload, list) or not payload:
            raise MalformedResponse("Expected a non-empty JSON array of strings", raw=payload)

        segments = [
            p for p in payload
            if isinstance(p, str) and len(p.strip()) >= self.min_segment_chars
        ]
        if not segments:
            raise ValidationRejection(
                f"All {len(payload)} proposed segments are shorter than {self.min_segment_chars} chars"
            )
        return segments

    def _build_prompt(self, text: str) -> str:
        return (
            "You are a content strategist deciding whether a text should become one "
            "visual note or several.\n"
            "Judge, in order of priority:\n"
            "1. Topic diversity: does the text cover several independent topics or chapters?\n"
            "2. Density: is one topic too dense for a single visual note?\n"
            "3. Logical layers: are there clear parts such as background / method / conclusion?\n"
            "4. Length: 800-1500 characters per note works best.\n\n"
            "Rules:\n"
            "- Single topic, compact, up to about 2500 characters: do not split.\n"
            "- 2-3 clear topics or 3000-5000 dense characters: split into 2-3 parts.\n"
            "- Many chapters and more than 5000 characters: split into 3-5 parts.\n"
            "- Never produce empty or meaningless parts, never cut one argument in half, "
            "keep the original order, and keep every part above 600 characters.\n\n"
            "Return ONLY a JSON array of strings. If no split is needed return "
            '["<the full original text>"]; otherwise ["part one", "part two", ...].\n\n'
            "Text to analyse:\n"
            f"{text}\n"
        )
