"""
Streaming intake for recorder uploads.

The multipart body is parsed straight off the request stream with
python-multipart, so the size cap stops the transfer as soon as it is
exceeded and nothing is spooled to a temporary file.  Only the ``audio``
file part is kept; other parts are parsed and discarded.
"""

from __future__ import annotations

import logging
from collections.abc import AsyncIterator
from dataclasses import dataclass

from fastapi import HTTPException, Request
from python_multipart.exceptions import FormParserError
from python_multipart.multipart import MultipartParser, parse_options_header

logger = logging.getLogger(__name__)

AUDIO_FIELD = "audio"

# Some browsers label MediaRecorder audio output as video/webm
ALLOWED_VIDEO_TYPES = frozenset({"video/webm"})

# Allowance for boundaries, part headers and small form fields on top of
# the file itself
MULTIPART_OVERHEAD = 64 * 1024

NO_AUDIO_MESSAGE = "No audio file provided"
NOT_AUDIO_MESSAGE = "Only audio files are allowed!"


def is_allowed_audio_type(content_type: str | None) -> bool:
    """Accept ``audio/*`` and the WebM video container; ignore parameters."""
    if not content_type:
        return False
    mime = content_type.split(";", 1)[0].strip().lower()
    return mime.startswith("audio/") or mime in ALLOWED_VIDEO_TYPES


def file_too_large(limit: int) -> HTTPException:
    return HTTPException(
        status_code=413,
        detail=f"File too large. Maximum size is {limit // (1024 * 1024)} MB.",
    )


@dataclass
class AudioUpload:
    """The ``audio`` part of an upload, fully received."""

    filename: str
    content_type: str
    data: bytes

    @property
    def size(self) -> int:
        return len(self.data)


class AudioUploadParser:
    """
    Pulls the ``audio`` file part out of a multipart stream.

    Rejections happen as early as the body allows: a non-audio content
    type as soon as the part headers are complete, an oversize file as
    soon as its data passes ``limit``.

    Usage:
        parser = AudioUploadParser(content_type, request.stream(), limit)
        upload = await parser.parse()
    """

    def __init__(self, content_type: str, stream: AsyncIterator[bytes], limit: int):
        self.content_type = content_type
        self.stream = stream
        self.limit = limit
        self.bytes_received = 0

        self._part_headers: dict[bytes, bytes] = {}
        self._header_name = b""
        self._header_value = b""
        self._in_audio = False
        self._audio_complete = False
        self._filename = ""
        self._audio_type = ""
        self._chunks: list[bytes] = []
        self._audio_size = 0

    # ── python-multipart callbacks ───────────────────────────────────

    def on_part_begin(self) -> None:
        self._part_headers = {}

    def on_header_field(self, data: bytes, start: int, end: int) -> None:
        self._header_name += data[start:end]

    def on_header_value(self, data: bytes, start: int, end: int) -> None:
        self._header_value += data[start:end]

    def on_header_end(self) -> None:
        self._part_headers[self._header_name.lower()] = self._header_value
        self._header_name = b""
        self._header_value = b""

    def on_headers_finished(self) -> None:
        _, options = parse_options_header(self._part_headers.get(b"content-disposition"))
        name = options.get(b"name", b"").decode("latin-1")
        if name != AUDIO_FIELD or b"filename" not in options or self._audio_complete:
            return

        content_type = self._part_headers.get(b"content-type", b"").decode("latin-1")
        if not is_allowed_audio_type(content_type):
            logger.info("Rejected upload with content type %r", content_type)
            raise HTTPException(status_code=400, detail=NOT_AUDIO_MESSAGE)

        self._in_audio = True
        self._filename = options[b"filename"].decode("utf-8", errors="replace")
        self._audio_type = content_type

    def on_part_data(self, data: bytes, start: int, end: int) -> None:
        if not self._in_audio:
            return
        self._audio_size += end - start
        if self._audio_size > self.limit:
            raise file_too_large(self.limit)
        self._chunks.append(data[start:end])

    def on_part_end(self) -> None:
        if self._in_audio:
            self._in_audio = False
            self._audio_complete = True

    # ── Parsing ──────────────────────────────────────────────────────

    async def parse(self) -> AudioUpload:
        """
        Consume the stream and return the audio part.

        Raises:
            HTTPException: 400 if there is no usable audio part or the body
                is malformed, 413 once the size cap is exceeded
        """
        mime, params = parse_options_header(self.content_type)
        boundary = params.get(b"boundary")
        if mime != b"multipart/form-data" or not boundary:
            raise HTTPException(status_code=400, detail=NO_AUDIO_MESSAGE)

        callbacks = {
            "on_part_begin": self.on_part_begin,
            "on_part_data": self.on_part_data,
            "on_part_end": self.on_part_end,
            "on_header_field": self.on_header_field,
            "on_header_value": self.on_header_value,
            "on_header_end": self.on_header_end,
            "on_headers_finished": self.on_headers_finished,
        }

        try:
            parser = MultipartParser(boundary, callbacks)
            async for chunk in self.stream:
                self.bytes_received += len(chunk)
                if self.bytes_received > self.limit + MULTIPART_OVERHEAD:
                    raise file_too_large(self.limit)
                parser.write(chunk)
            parser.finalize()
        except FormParserError as e:
            logger.info("Malformed multipart upload: %s", e)
            raise HTTPException(status_code=400, detail=NO_AUDIO_MESSAGE)

        if not self._audio_complete:
            raise HTTPException(status_code=400, detail=NO_AUDIO_MESSAGE)

        return AudioUpload(
            filename=self._filename,
            content_type=self._audio_type,
            data=b"".join(self._chunks),
        )


async def receive_audio_upload(request: Request, limit: int) -> AudioUpload:
    """
    Read the ``audio`` file from a multipart request, capped at ``limit`` bytes.

    A declared ``Content-Length`` beyond the cap is refused before any of
    the body is read.
    """
    declared = request.headers.get("content-length", "")
    if declared.isdigit() and int(declared) > limit + MULTIPART_OVERHEAD:
        raise file_too_large(limit)

    parser = AudioUploadParser(request.headers.get("content-type", ""), request.stream(), limit)
    return await parser.parse()
