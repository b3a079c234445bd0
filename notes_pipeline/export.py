import io
import logging
from pathlib import Path
from typing import Iterable, List

from PIL import Image

from .models import ImagePayload, NoteUnit


logger = logging.getLogger(__name__)


def load_image(payload: ImagePayload) -> Image.Image:
    """Decode an image payload into a Pillow image."""
    img = Image.open(io.BytesIO(payload.data))
    img.load()
    return img


def note_filename(unit: NoteUnit) -> str:
    return f"visual-note-{unit.order}.png"


def export_images(units: Iterable[NoteUnit], output_dir: Path) -> List[Path]:
    """
    Save every finished note image as a PNG under `output_dir`.

    Units without an image are skipped. Images are re-encoded as PNG whatever
    MIME type the model returned.
    """
    output_dir.mkdir(parents=True, exist_ok=True)
    saved: List[Path] = []
    for unit in units:
        if unit.final_image is None:
            continue
        img = load_image(unit.final_image)
        if img.mode not in ("RGB", "RGBA"):
            img = img.convert("RGBA" if "A" in img.getbands() else "RGB")
        path = output_dir / note_filename(unit)
        img.save(path, format="PNG")
        logger.info("Saved note %d to %s", unit.order, path)
        saved.append(path)
    return saved
