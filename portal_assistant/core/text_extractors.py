"""Attachment normalization for assistant turns.

Turns an (utterance, attachment URL, MIME type) triple into the effective
user turn sent to the model:
- PDF / Word / plain-text documents are appended to the utterance
- audio replaces the utterance with its transcription
- images are passed through as a vision part
"""

import time
from io import BytesIO

import fitz
import httpx
import openai
from docx import Document

from portal_assistant.core.config import Settings, get_settings
from portal_assistant.core.errors import ExtractionError
from portal_assistant.core.llm import PROVIDER_OPENAI, UserTurn
from portal_assistant.core.llm_usage import log_llm_usage
from portal_assistant.core.logging import get_logger

logger = get_logger(__name__)

PDF_MIME = "application/pdf"
DOCX_MIME = "application/vnd.openxmlformats-officedocument.wordprocessingml.document"
TEXT_MIME_PREFIXES = ("text/", "application/json")

DOCUMENT_MARKER = "--- Attached Document Content ---"
VOICE_MESSAGE_PREFIX = "(Voice Message): "

FETCH_TIMEOUT = 30.0

# Whisper needs a filename with a known extension to sniff the container
_AUDIO_EXTENSIONS = {
    "audio/mpeg": "mp3",
    "audio/mp3": "mp3",
    "audio/mp4": "m4a",
    "audio/x-m4a": "m4a",
    "audio/wav": "wav",
    "audio/x-wav": "wav",
    "audio/webm": "webm",
    "audio/ogg": "ogg",
}


def is_document(mime: str | None) -> bool:
    if not mime:
        return False
    return mime in (PDF_MIME, DOCX_MIME) or mime.lower().startswith(TEXT_MIME_PREFIXES)


def is_audio(mime: str | None) -> bool:
    return bool(mime) and mime.lower().startswith("audio/")


def is_image(mime: str | None) -> bool:
    return bool(mime) and mime.lower().startswith("image/")


def _decode_text(raw_bytes: bytes) -> str:
    """Decode text bytes with a UTF-8-BOM / UTF-8 / Latin-1 fallback chain."""
    if raw_bytes.startswith(b"\xef\xbb\xbf"):
        return raw_bytes.decode("utf-8-sig")
    try:
        return raw_bytes.decode("utf-8")
    except UnicodeDecodeError:
        return raw_bytes.decode("latin-1")


class TextExtractor:
    """Fetches attachments and turns them into text or vision input."""

    def __init__(
        self,
        settings: Settings | None = None,
        http_client: httpx.AsyncClient | None = None,
        openai_client: openai.AsyncOpenAI | None = None,
    ):
        self.settings = settings or get_settings()
        self._http = http_client
        self._openai = openai_client

    async def fetch(self, url: str) -> bytes:
        """Download an attachment, refusing anything over MAX_ATTACHMENT_BYTES."""
        limit = self.settings.MAX_ATTACHMENT_BYTES
        client = self._http or httpx.AsyncClient(timeout=FETCH_TIMEOUT, follow_redirects=True)
        try:
            async with client.stream("GET", url) as response:
                response.raise_for_status()
                chunks: list[bytes] = []
                size = 0
                async for chunk in response.aiter_bytes():
                    size += len(chunk)
                    if size > limit:
                        raise ExtractionError(
                            f"The attachment is larger than {limit // (1024 * 1024)} MB.",
                            extractor="fetch",
                        )
                    chunks.append(chunk)
        except httpx.HTTPStatusError as e:
            raise ExtractionError(
                f"Failed to fetch attachment from storage: {e.response.status_code}",
                extractor="fetch",
            ) from e
        except httpx.HTTPError as e:
            raise ExtractionError(f"Failed to fetch attachment: {e}", extractor="fetch") from e
        finally:
            if self._http is None:
                await client.aclose()

        logger.debug(f"Fetched attachment ({size} bytes)")
        return b"".join(chunks)

    def extract_pdf(self, data: bytes) -> str:
        """Extract page text from a PDF with PyMuPDF."""
        try:
            doc = fitz.open(stream=data, filetype="pdf")
        except Exception as e:
            raise ExtractionError(f"Failed to open PDF: {e}", extractor="pdf") from e

        try:
            pages = [page.get_text() for page in doc]
        finally:
            doc.close()

        text = "\n".join(p.strip() for p in pages if p.strip())
        if not text:
            raise ExtractionError(
                "The PDF has no readable text (it may be a scanned image).", extractor="pdf"
            )
        logger.info(f"Extracted {len(text.split())} words from {len(pages)} PDF pages")
        return text

    def extract_docx(self, data: bytes) -> str:
        """Extract paragraph and table text from a Word document."""
        try:
            doc = Document(BytesIO(data))
        except Exception as e:
            raise ExtractionError(f"Failed to open DOCX: {e}", extractor="docx") from e

        parts = [p.text.strip() for p in doc.paragraphs if p.text.strip()]
        for table in doc.tables:
            rows = [" | ".join(cell.text.strip() for cell in row.cells) for row in table.rows]
            table_text = "\n".join(rows)
            if table_text.strip():
                parts.append(table_text)

        text = "\n".join(parts)
        if not text:
            raise ExtractionError("The Word document appears to be empty.", extractor="docx")
        logger.info(f"Extracted {len(text.split())} words from DOCX")
        return text

    async def transcribe_audio(self, data: bytes, filename: str) -> str:
        """Transcribe a voice message with the OpenAI transcription model."""
        if self._openai is None:
            if not self.settings.OPENAI_API_KEY:
                raise ExtractionError(
                    "Voice messages need an OpenAI API key for transcription.",
                    extractor="audio",
                )
            self._openai = openai.AsyncOpenAI(api_key=self.settings.OPENAI_API_KEY)

        kwargs = {
            "file": (filename, data),
            "model": self.settings.TRANSCRIPTION_MODEL,
            "prompt": self.settings.TRANSCRIPTION_PROMPT,
        }
        if self.settings.TRANSCRIPTION_LANGUAGE:
            kwargs["language"] = self.settings.TRANSCRIPTION_LANGUAGE

        start = time.time()
        try:
            transcription = await self._openai.audio.transcriptions.create(**kwargs)
        except openai.OpenAIError as e:
            logger.error(f"Transcription failed: {e}")
            raise ExtractionError(f"Failed to transcribe audio: {e}", extractor="audio") from e

        log_llm_usage(
            workflow="transcription",
            model=self.settings.TRANSCRIPTION_MODEL,
            provider=PROVIDER_OPENAI,
            tokens_input=0,
            tokens_output=0,
            duration_ms=int((time.time() - start) * 1000),
        )

        text = (transcription.text or "").strip()
        if not text:
            raise ExtractionError("The voice message was empty.", extractor="audio")
        logger.info(f"Transcribed voice message ({len(text)} chars)")
        return text

    async def normalize_attachment(
        self, request_text: str, url: str | None, mime: str | None
    ) -> UserTurn:
        """
        Build the effective user turn for a request.

        Args:
            request_text: The typed utterance (may be empty)
            url: Attachment URL, if any
            mime: Attachment MIME type

        Returns:
            UserTurn with text, optional image URL and a transcribed flag

        Raises:
            ExtractionError: If the attachment cannot be fetched or read
        """
        request_text = request_text or ""
        if not url:
            return UserTurn(text=request_text)

        if is_image(mime):
            return UserTurn(text=request_text, image_url=url)

        if is_audio(mime):
            data = await self.fetch(url)
            filename = f"voice-message.{_AUDIO_EXTENSIONS.get(mime.lower(), 'webm')}"
            transcript = await self.transcribe_audio(data, filename)
            return UserTurn(text=transcript, transcribed=True)

        if is_document(mime):
            data = await self.fetch(url)
            if mime == PDF_MIME:
                document_text = self.extract_pdf(data)
            elif mime == DOCX_MIME:
                document_text = self.extract_docx(data)
            else:
                document_text = _decode_text(data)
            return UserTurn(text=f"{request_text}\n\n{DOCUMENT_MARKER}\n{document_text}")

        logger.info(f"Ignoring attachment with unsupported type {mime!r}")
        return UserTurn(text=request_text)
