"""
Parsing of raw gemini responses into status, meta and body.
"""

import codecs
from dataclasses import dataclass
from enum import Enum
from typing import Optional, Tuple


GEMTEXT_MIME_TYPE = "text/gemini"
DEFAULT_CHARSET = "utf-8"


class MalformedResponse(ValueError):
    """Raised when a response header or body cannot be interpreted."""
    pass


class StatusCategory(Enum):
    """Response classes, keyed by the first digit of the status code."""
    INPUT = 1
    SUCCESS = 2
    REDIRECT = 3
    TEMPORARY_FAILURE = 4
    PERMANENT_FAILURE = 5
    CLIENT_CERTIFICATE = 6
    UNKNOWN = 0

    @classmethod
    def from_status(cls, status: int) -> 'StatusCategory':
        try:
            return cls(status // 10)
        except ValueError:
            return cls.UNKNOWN


@dataclass
class GeminiResponse:
    """A parsed gemini response."""
    status: int
    meta: str
    body: bytes = b''
    text: Optional[str] = None

    @property
    def category(self) -> StatusCategory:
        return StatusCategory.from_status(self.status)

    @property
    def is_gemtext(self) -> bool:
        return self.category is StatusCategory.SUCCESS and _is_gemtext(self.meta)


def _media_type(meta: str) -> Tuple[str, dict]:
    """Split a MIME type such as ``text/gemini; charset=utf-8``."""
    mime, *raw_params = meta.split(";")
    params = {}
    for param in raw_params:
        key, sep, value = param.partition("=")
        if sep:
            params[key.strip().lower()] = value.strip().strip('"')
    return mime.strip().lower(), params


def _is_gemtext(meta: str) -> bool:
    mime, _ = _media_type(meta)
    return mime == GEMTEXT_MIME_TYPE


def _split_header(raw: bytes) -> Tuple[bytes, bytes]:
    if not raw:
        raise MalformedResponse("Empty response")
    header, _, body = raw.partition(b"\n")
    return header.rstrip(b"\r"), body


def parse_header(line: str) -> Tuple[int, str]:
    """
    Split a header line into a two digit status code and its meta text.

    Raises:
        MalformedResponse: if the line does not start with two digits
            followed by a space or the end of the line.
    """
    code, rest = line[:2], line[2:]
    if len(code) != 2 or not (code.isascii() and code.isdigit()):
        raise MalformedResponse(f"Invalid status code in header: {line!r}")
    if rest and not rest.startswith(" "):
        raise MalformedResponse(f"Invalid header: {line!r}")
    return int(code), rest[1:]


def decode_body(body: bytes, meta: str) -> str:
    _, params = _media_type(meta)
    charset = params.get("charset", DEFAULT_CHARSET)
    try:
        codecs.lookup(charset)
    except LookupError as e:
        raise MalformedResponse(f"Unknown charset {charset!r}") from e
    try:
        return body.decode(charset)
    except UnicodeDecodeError as e:
        raise MalformedResponse(f"Body is not valid {charset}: {e}") from e


def parse_response(raw: bytes) -> GeminiResponse:
    """
    Parse a raw response.

    The body of a successful ``text/gemini`` response is decoded as well,
    so a response that passes this function can be handed to the gemtext
    parser without further checks.
    """
    header_bytes, body = _split_header(raw)
    try:
        header = header_bytes.decode('utf-8')
    except UnicodeDecodeError as e:
        raise MalformedResponse(f"Header is not valid UTF-8: {e}") from e

    status, meta = parse_header(header)
    response = GeminiResponse(status=status, meta=meta, body=body)
    if response.is_gemtext:
        response.text = decode_body(body, meta)
    return response
