"""
MIME Extraction Module

Turns the body of a raw RFC-2822 message into its plaintext and HTML
content without the stdlib email parser: the edge runtime hands us one
UTF-8 decoded string and nothing else.

Parts are split on their boundary into a MimeLeaf / MimeMultipart tree,
then folded into an ExtractedContent. Every leaf that is not text/html
(text/plain, no content type, or any unknown type) lands in the text
bucket. Malformed structure is dropped part by part, never raised.

Transfer decoding is a heuristic because per-part Content-Transfer-Encoding
is not available upstream; the part header is intentionally not consulted.
"""

import base64
import binascii
import re
from dataclasses import dataclass
from typing import Union

BOUNDARY_PATTERN = re.compile(r'boundary\s*=\s*"?([^";\s]+)"?', re.IGNORECASE)

# Bodies longer than this that use only the base64 alphabet are tried as base64
BASE64_MIN_LENGTH = 20
_BASE64_BODY = re.compile(r"[A-Za-z0-9+/]+=*")
_BASE64_UNPADDED = re.compile(r"[A-Za-z0-9+/]*")

_LINE_BREAK = re.compile(r"\r?\n")
_HEADER_FOLD = re.compile(r"\r?\n[ \t]+")
_QP_SOFT_BREAK = re.compile(r"=\r?\n")
_QP_ESCAPE = re.compile(r"=([0-9A-Fa-f]{2})")

CRLF_SEPARATOR = "\r\n\r\n"
LF_SEPARATOR = "\n\n"


@dataclass(frozen=True)
class ExtractedContent:
    """Plaintext and HTML collected from a message; None means no such part."""

    text: str | None = None
    html: str | None = None

    def merge(self, other: "ExtractedContent") -> "ExtractedContent":
        """Append a sibling's content. Empty results leave this side unchanged."""
        text = self.text
        html = self.html
        if other.text:
            text = (text or "") + other.text
        if other.html:
            html = (html or "") + other.html
        return ExtractedContent(text=text, html=html)

    def to_dict(self) -> dict[str, str]:
        """JSON fields for the payload; absent parts are left out."""
        result = {}
        if self.text is not None:
            result["text"] = self.text
        if self.html is not None:
            result["html"] = self.html
        return result


@dataclass(frozen=True)
class MimeLeaf:
    """A single non-multipart part; body is still transfer-encoded."""

    content_type: str
    body: str


@dataclass(frozen=True)
class MimeMultipart:
    """A multipart container. boundary is None when the header lacked one."""

    content_type: str
    boundary: str | None
    parts: tuple["MimeNode", ...] = ()


MimeNode = Union[MimeLeaf, MimeMultipart]


# =====================================================
# Header handling
# =====================================================


def split_header_body(raw: str) -> tuple[str, str] | None:
    """
    Split a message or part at its header/body separator.

    Uses whichever of CRLF-CRLF and LF-LF occurs first; CRLF wins a tie.

    Returns:
        (header_block, body) or None when there is no separator
    """
    crlf_idx = raw.find(CRLF_SEPARATOR)
    lf_idx = raw.find(LF_SEPARATOR)

    if crlf_idx != -1 and (lf_idx == -1 or crlf_idx <= lf_idx):
        return raw[:crlf_idx], raw[crlf_idx + len(CRLF_SEPARATOR):]
    if lf_idx != -1:
        return raw[:lf_idx], raw[lf_idx + len(LF_SEPARATOR):]
    return None


def extract_header_value(block: str, name: str) -> str:
    """
    Get the unfolded value of a named header from a raw header block.

    The match is case-insensitive and anchored at the start of a line.
    Continuation lines (leading space or tab) are joined with one space.

    Returns:
        Header value, or "" if the header is absent
    """
    pattern = re.compile(
        rf"^{re.escape(name)}[ \t]*:[ \t]*(.*(?:\r?\n[ \t]+.*)*)",
        re.IGNORECASE | re.MULTILINE,
    )
    match = pattern.search(block)
    if not match:
        return ""
    return _HEADER_FOLD.sub(" ", match.group(1)).strip()


def parse_header_block(block: str) -> list[tuple[str, str]]:
    """
    Parse every header in a raw block, in order, with folds removed.

    Lines that are neither "name: value" nor a continuation are ignored.
    """
    headers: list[tuple[str, str]] = []
    for line in _LINE_BREAK.split(block):
        if not line.strip():
            continue
        if line[0] in " \t":
            if headers:
                name, value = headers[-1]
                headers[-1] = (name, f"{value} {line.strip()}".strip())
            continue
        name, sep, value = line.partition(":")
        if not sep or not name.strip():
            continue
        headers.append((name.strip(), value.strip()))
    return headers


def aggregate_headers(pairs) -> dict[str, str | list[str]]:
    """Lowercase header names; a repeated name collects its values in a list."""
    headers: dict[str, str | list[str]] = {}
    for name, value in pairs:
        key = name.lower()
        existing = headers.get(key)
        if existing is None:
            headers[key] = value
        elif isinstance(existing, list):
            existing.append(value)
        else:
            headers[key] = [existing, value]
    return headers


def parse_boundary(content_type: str) -> str | None:
    """Extract the boundary= parameter, quoted or not. Case is preserved."""
    match = BOUNDARY_PATTERN.search(content_type)
    return match.group(1) if match else None


# =====================================================
# Transfer decoding
# =====================================================


def decode_qp(value: str) -> str:
    """
    Decode quoted-printable.

    Each =XX escape becomes the character with that code point, so
    multi-byte UTF-8 sequences decode byte by byte (=C3=A9 gives two chars).
    """
    value = _QP_SOFT_BREAK.sub("", value)
    return _QP_ESCAPE.sub(lambda m: chr(int(m.group(1), 16)), value)


def decode_base64_safe(value: str) -> str:
    """
    Decode base64, accepting the URL-safe alphabet and embedded whitespace.

    Decoded bytes are read as UTF-8; bytes that are not valid UTF-8 come
    back as a binary string (one character per byte).

    Raises:
        binascii.Error: If the input is not decodable base64
    """
    clean = re.sub(r"\s", "", value).replace("-", "+").replace("_", "/")

    # Same leniency as a browser's atob(): up to two trailing "=" when the
    # length is a multiple of four, otherwise padding is optional.
    if len(clean) % 4 == 0:
        if clean.endswith("=="):
            clean = clean[:-2]
        elif clean.endswith("="):
            clean = clean[:-1]
    if len(clean) % 4 == 1 or not _BASE64_UNPADDED.fullmatch(clean):
        raise binascii.Error("Invalid base64 input")

    raw = base64.b64decode(clean + "=" * (-len(clean) % 4), validate=True)
    try:
        return raw.decode("utf-8")
    except UnicodeDecodeError:
        return raw.decode("latin-1")


def looks_like_base64(body: str) -> bool:
    """True when the body, ignoring line breaks, is over BASE64_MIN_LENGTH base64-alphabet chars."""
    stripped = _LINE_BREAK.sub("", body)
    return len(stripped) > BASE64_MIN_LENGTH and _BASE64_BODY.fullmatch(stripped) is not None


def decode_part(body: str) -> str:
    """Decode a leaf body: base64 when it looks like base64, else quoted-printable."""
    if looks_like_base64(body):
        try:
            return decode_base64_safe(_LINE_BREAK.sub("", body))
        except (binascii.Error, ValueError):
            pass
    return decode_qp(body)


# =====================================================
# Tree building and folding
# =====================================================


def _split_multipart(body: str, boundary: str) -> list[tuple[str, str]]:
    """Split a multipart body into (content_type, body) pairs, dropping bad fragments."""
    delimiter = re.compile(r"\r?\n" + re.escape(f"--{boundary}"))
    parts: list[tuple[str, str]] = []

    for fragment in delimiter.split(body):
        trimmed = fragment.strip()
        # Preamble marker or the tail of the closing "--boundary--"
        if not trimmed or trimmed == "--":
            continue

        split = split_header_body(fragment)
        if split is None:
            continue

        part_headers, part_body = split
        parts.append((extract_header_value(part_headers, "content-type"), part_body))

    return parts


def parse_mime_tree(body: str, content_type: str) -> MimeNode:
    """
    Build the MIME tree for a body governed by content_type.

    Multipart types recurse into their parts; everything else is a leaf.
    """
    if content_type.lower().startswith("multipart/"):
        boundary = parse_boundary(content_type)
        if not boundary:
            return MimeMultipart(content_type=content_type, boundary=None)
        children = tuple(
            parse_mime_tree(part_body, part_type)
            for part_type, part_body in _split_multipart(body, boundary)
        )
        return MimeMultipart(content_type=content_type, boundary=boundary, parts=children)

    return MimeLeaf(content_type=content_type, body=body)


def collect_content(node: MimeNode) -> ExtractedContent:
    """Fold a MIME tree into text/html in document order."""
    if isinstance(node, MimeMultipart):
        result = ExtractedContent()
        for child in node.parts:
            result = result.merge(collect_content(child))
        return result

    if node.content_type.lower().startswith("text/html"):
        return ExtractedContent(html=decode_part(node.body))
    return ExtractedContent(text=decode_part(node.body))


def extract_parts(body: str, content_type: str) -> ExtractedContent:
    """
    Extract plaintext and HTML from a MIME body.

    Args:
        body: Body text (permissively UTF-8 decoded)
        content_type: Raw Content-Type header value governing body, may be ""

    Returns:
        ExtractedContent; a multipart type without a boundary yields an
        empty result
    """
    return collect_content(parse_mime_tree(body, content_type))


def extract_message(raw: str) -> tuple[str, ExtractedContent]:
    """
    Extract content from a whole raw message.

    The top-level Content-Type is read from the message's own header block.
    Without a header/body separator the whole input is treated as body.

    Returns:
        (header_block, content)
    """
    split = split_header_body(raw)
    if split is None:
        return "", extract_parts(raw, "")
    header_block, body = split
    return header_block, extract_parts(body, extract_header_value(header_block, "content-type"))
