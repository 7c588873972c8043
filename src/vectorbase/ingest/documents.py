"""Document loader — uploaded file bytes to plain text.

Supported formats:
- PDF via pypdf (page count recorded)
- DOCX via python-docx (paragraphs, then table rows)
- Plain text / Markdown via UTF-8 decode
- HTML via BeautifulSoup + html2text
- Images (PNG/JPEG/GIF/WEBP) via a LiteLLM vision completion (OCR prompt)
"""

from __future__ import annotations

import base64
import io
import logging
from dataclasses import dataclass, field

import docx
import html2text
import litellm
import pypdf
from bs4 import BeautifulSoup

logger = logging.getLogger(__name__)

DEFAULT_VISION_MODEL = "openai/gpt-4o"

_PDF_TYPES = {"application/pdf"}
_DOCX_TYPES = {"application/vnd.openxmlformats-officedocument.wordprocessingml.document"}
_TEXT_TYPES = {"text/plain", "text/markdown", "text/x-markdown"}
_HTML_TYPES = {"text/html", "application/xhtml+xml"}
_IMAGE_TYPES = {"image/png", "image/jpeg", "image/jpg", "image/gif", "image/webp"}
_IMAGE_EXTENSIONS = (".png", ".jpg", ".jpeg", ".gif", ".webp")

_OCR_PROMPT = """\
You are an OCR and document analysis expert. Analyze this image and extract ALL \
text content visible in it.

If this is a document, diagram, or screenshot:
- Extract all visible text exactly as it appears
- Preserve the structure and formatting as much as possible
- Include any headers, labels, captions, or annotations
- Represent tables in a clear text format
- Describe diagrams or charts and extract any text/labels

If this is a photo or illustration:
- Describe what's in the image
- Extract any visible text (signs, labels, watermarks, etc.)

Provide a comprehensive text extraction that captures all the information in this image."""

# html2text converter
_h2t = html2text.HTML2Text()
_h2t.ignore_links = True
_h2t.ignore_images = True
_h2t.body_width = 0


class DocumentLoadError(ValueError):
    """Raised for unsupported or unreadable documents."""


@dataclass
class LoadedDocument:
    content: str
    metadata: dict = field(default_factory=dict)

    @property
    def page_count(self) -> int | None:
        return self.metadata.get("page_count")


def load_document(
    data: bytes,
    file_name: str,
    mime_type: str,
    vision_model: str = DEFAULT_VISION_MODEL,
) -> LoadedDocument:
    """Extract text from *data*, choosing the loader by MIME type or file extension.

    Raises:
        DocumentLoadError: unsupported type, corrupt file, or an image with no
            extractable content.
    """
    mime = (mime_type or "").lower()
    name = file_name.lower()

    if mime in _PDF_TYPES or name.endswith(".pdf"):
        return _load_pdf(data, file_name)
    if mime in _DOCX_TYPES or name.endswith(".docx"):
        return _load_docx(data, file_name)
    if mime in _HTML_TYPES or name.endswith((".html", ".htm")):
        return _load_html(data, file_name)
    if mime in _TEXT_TYPES or name.endswith((".txt", ".md", ".markdown")):
        file_type = "md" if name.endswith((".md", ".markdown")) else "txt"
        return LoadedDocument(
            content=data.decode("utf-8", errors="replace"),
            metadata={"file_name": file_name, "file_type": file_type},
        )
    if mime in _IMAGE_TYPES or name.endswith(_IMAGE_EXTENSIONS):
        return _load_image(data, file_name, mime, vision_model)

    raise DocumentLoadError(f"Unsupported file type: {mime_type or file_name}")


def _load_pdf(data: bytes, file_name: str) -> LoadedDocument:
    try:
        reader = pypdf.PdfReader(io.BytesIO(data))
        parts: list[str] = []
        for page in reader.pages:
            page_text = (page.extract_text() or "").strip()
            if page_text:
                parts.append(page_text)
        page_count = len(reader.pages)
    except pypdf.errors.PdfReadError as exc:
        raise DocumentLoadError(f"Could not read PDF '{file_name}': {exc}") from exc
    return LoadedDocument(
        content="\n\n".join(parts),
        metadata={"file_name": file_name, "file_type": "pdf", "page_count": page_count},
    )


def _load_docx(data: bytes, file_name: str) -> LoadedDocument:
    try:
        document = docx.Document(io.BytesIO(data))
    except Exception as exc:
        raise DocumentLoadError(f"Could not read DOCX '{file_name}': {exc}") from exc

    parts = [p.text for p in document.paragraphs if p.text.strip()]
    for table in document.tables:
        for row in table.rows:
            cells = [cell.text.strip() for cell in row.cells]
            if any(cells):
                parts.append(" | ".join(cells))
    return LoadedDocument(
        content="\n\n".join(parts),
        metadata={"file_name": file_name, "file_type": "docx"},
    )


def _load_html(data: bytes, file_name: str) -> LoadedDocument:
    soup = BeautifulSoup(data.decode("utf-8", errors="replace"), "html.parser")
    for tag in soup.find_all(["script", "style", "nav", "footer", "head"]):
        tag.decompose()
    return LoadedDocument(
        content=_h2t.handle(str(soup)).strip(),
        metadata={"file_name": file_name, "file_type": "html"},
    )


def _load_image(data: bytes, file_name: str, mime: str, model: str) -> LoadedDocument:
    if not mime.startswith("image/"):
        mime = f"image/{file_name.rsplit('.', 1)[-1].lower()}"
    data_url = f"data:{mime};base64,{base64.b64encode(data).decode('ascii')}"

    logger.info("Extracting text from image %s with %s", file_name, model)
    response = litellm.completion(
        model=model,
        messages=[
            {
                "role": "user",
                "content": [
                    {"type": "text", "text": _OCR_PROMPT},
                    {"type": "image_url", "image_url": {"url": data_url, "detail": "high"}},
                ],
            }
        ],
        max_tokens=4096,
    )
    content = (response.choices[0].message.content or "").strip()
    if not content:
        raise DocumentLoadError("No content could be extracted from the image")
    return LoadedDocument(
        content=content,
        metadata={
            "file_name": file_name,
            "file_type": "image",
            "extracted_with_vision": True,
        },
    )
