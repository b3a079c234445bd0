import io
import json
import tempfile
import unittest
from pathlib import Path

from PIL import Image

from notes_pipeline.export import export_images, load_image, note_filename
from notes_pipeline.models import ImagePayload, NoteOutline, NoteUnit, Stage, unit_to_dict


def encode(mode: str, fmt: str) -> bytes:
    buf = io.BytesIO()
    Image.new(mode, (6, 8), color=0).save(buf, format=fmt)
    return buf.getvalue()


def done_unit(order: int, payload: ImagePayload) -> NoteUnit:
    return NoteUnit(
        id=f"note-{order}",
        order=order,
        original_text="text",
        stage=Stage.DONE,
        structure=NoteOutline(title="t"),
        generated_prompt="p",
        final_image=payload,
    )


class TestExport(unittest.TestCase):
    def test_saves_finished_notes_as_png(self) -> None:
        png = done_unit(1, ImagePayload(encode("RGB", "PNG")))
        jpeg = done_unit(2, ImagePayload(encode("L", "JPEG"), "image/jpeg"))
        pending = NoteUnit(id="note-3", order=3, original_text="text")

        with tempfile.TemporaryDirectory() as tmp:
            out_dir = Path(tmp) / "batch"
            saved = export_images([png, jpeg, pending], out_dir)

            self.assertEqual([p.name for p in saved], ["visual-note-1.png", "visual-note-2.png"])
            for path in saved:
                with Image.open(path) as img:
                    self.assertEqual(img.format, "PNG")
                    self.assertEqual(img.size, (6, 8))
                    self.assertIn(img.mode, ("RGB", "RGBA"))

    def test_load_image_and_filename(self) -> None:
        unit = done_unit(4, ImagePayload(encode("RGBA", "PNG")))

        self.assertEqual(load_image(unit.final_image).size, (6, 8))
        self.assertEqual(note_filename(unit), "visual-note-4.png")

    def test_unit_to_dict_summarizes_image(self) -> None:
        data = encode("RGB", "PNG")
        as_dict = unit_to_dict(done_unit(1, ImagePayload(data)))

        self.assertEqual(as_dict["stage"], "DONE")
        self.assertEqual(as_dict["final_image"], {"mime_type": "image/png", "size_bytes": len(data)})
        self.assertEqual(as_dict["structure"]["title"], "t")
        json.dumps(as_dict)


if __name__ == "__main__":
    unittest.main()
