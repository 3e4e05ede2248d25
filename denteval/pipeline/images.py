"""Intake and normalization of the two evaluation photographs."""

from __future__ import annotations

import base64
import binascii
import io
import re
from dataclasses import dataclass

from PIL import Image, ImageOps, UnidentifiedImageError

from denteval.errors import IncompleteInputError

_MAX_WIDTH = 1600
_JPEG_QUALITY = 85
_DATA_URL_RE = re.compile(r"^data:(?P<mime>[\w.+-]+/[\w.+-]+)?(?:;[\w=-]+)*;base64,", re.IGNORECASE)

VIEWS = ("occlusal", "proximal")


@dataclass(frozen=True)
class EvaluationImage:
    """One uploaded photograph with its declared MIME type."""

    data: bytes
    mime_type: str = "image/jpeg"


@dataclass
class NormalizedImage:
    """Normalized image blob ready for the vision payload."""

    image_bytes: bytes
    mime_type: str
    width: int
    height: int
    original_size_bytes: int
    final_size_bytes: int

    @property
    def data_url(self) -> str:
        encoded = base64.b64encode(self.image_bytes).decode("utf-8")
        return f"data:{self.mime_type};base64,{encoded}"


def decode_image_payload(value: bytes | str | None, mime_type: str | None = None) -> EvaluationImage | None:
    """Accept raw bytes, bare base64 or a ``data:`` URL; empty input yields None."""

    if value is None:
        return None
    if isinstance(value, bytes):
        if not value:
            return None
        return EvaluationImage(data=value, mime_type=(mime_type or "image/jpeg"))

    text = value.strip()
    if not text:
        return None
    match = _DATA_URL_RE.match(text)
    if match:
        mime_type = mime_type or match.group("mime")
        text = text[match.end() :]
    try:
        data = base64.b64decode(text, validate=True)
    except (binascii.Error, ValueError) as exc:
        raise IncompleteInputError(message="Görüntü verisi base64 olarak çözülemedi") from exc
    if not data:
        return None
    return EvaluationImage(data=data, mime_type=(mime_type or "image/jpeg"))


def normalize_evaluation_image(
    image: EvaluationImage,
    view: str,
    max_width: int = _MAX_WIDTH,
    jpeg_quality: int = _JPEG_QUALITY,
) -> NormalizedImage:
    """Decode, orient, downscale and re-encode one photograph as JPEG."""

    try:
        with Image.open(io.BytesIO(image.data)) as source:
            source.load()
            converted = ImageOps.exif_transpose(source).convert("RGB")
    except (UnidentifiedImageError, Image.DecompressionBombError, OSError) as exc:
        raise IncompleteInputError(missing_views=[view], message=f"Geçersiz görüntü dosyası: {view}") from exc

    if converted.width > max_width:
        scale = max_width / float(converted.width)
        converted = converted.resize((max_width, max(1, int(converted.height * scale))), Image.Resampling.LANCZOS)

    output = io.BytesIO()
    converted.save(output, format="JPEG", quality=jpeg_quality, optimize=True)
    payload = output.getvalue()
    return NormalizedImage(
        image_bytes=payload,
        mime_type="image/jpeg",
        width=converted.width,
        height=converted.height,
        original_size_bytes=len(image.data),
        final_size_bytes=len(payload),
    )


def require_both_views(occlusal: EvaluationImage | None, proximal: EvaluationImage | None) -> None:
    missing = [view for view, image in zip(VIEWS, (occlusal, proximal)) if image is None or not image.data]
    if missing:
        raise IncompleteInputError(missing_views=missing)


def prepare_evaluation_images(
    occlusal: EvaluationImage | None,
    proximal: EvaluationImage | None,
    max_width: int = _MAX_WIDTH,
    jpeg_quality: int = _JPEG_QUALITY,
) -> list[NormalizedImage]:
    """Validate presence of both views and normalize them in view order."""

    require_both_views(occlusal, proximal)
    return [
        normalize_evaluation_image(image, view, max_width=max_width, jpeg_quality=jpeg_quality)
        for view, image in zip(VIEWS, (occlusal, proximal))
    ]
