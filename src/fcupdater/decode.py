"""Decoding of single-byte/DBCS text stored in legacy ``.xls`` cells."""

from __future__ import annotations

import codecs
import hashlib
import logging
import shlex
from typing import Any

from fcupdater.config import Settings
from fcupdater.errors import (
    CommandTimeoutError,
    DecodeError,
    ExternalToolUnavailableError,
    IoError,
)
from fcupdater.process import run_command

logger = logging.getLogger(__name__)

REPLACEMENT_CHAR = "�"

_CODE_PAGES: dict[int, str] = {
    949: "cp949",
    1361: "cp949",
    51949: "cp949",
    65001: "utf-8",
    1252: "cp1252",
}

# BIFF8 books declare UTF-16; compressed strings then use the decoder default.
_UNICODE_CODE_PAGE = 1200

# Codec name -> decoder, consulted by the search function registered below.
# Names are derived from the decoder configuration, so equal decoders share one.
_REGISTRY: dict[str, Decoder] = {}


def encoding_for_code_page(code_page: int) -> str:
    return _CODE_PAGES.get(code_page, "latin-1")


class Decoder:
    """Decode legacy cell bytes in strict or lossy mode.

    An optional helper command (for example ``iconv -f CP949 -t UTF-8``)
    gets the first try; if it is missing, times out or fails, the built-in
    codec table takes over. Only the built-in path decides whether strict
    mode raises.
    """

    def __init__(
        self,
        *,
        strict: bool = False,
        code_page: int = 949,
        helper: str | None = None,
        timeout: float | None = None,
    ) -> None:
        self.strict = strict
        self.code_page = code_page
        self.encoding = encoding_for_code_page(code_page)
        self.helper = shlex.split(helper) if helper else []
        self.timeout = timeout

    @classmethod
    def from_settings(cls, settings: Settings) -> Decoder:
        return cls(
            strict=settings.cp949_strict,
            helper=settings.decoder_helper,
            # Falls back to the general external-command limit.
            timeout=settings.decoder_timeout or settings.command_timeout,
        )

    @property
    def mode(self) -> str:
        return "strict" if self.strict else "lossy"

    def decode(self, data: bytes, code_page: int | None = None) -> str:
        if data.isascii():
            return data.decode("ascii")
        if self.helper and code_page in (None, self.code_page):
            text = self._decode_with_helper(data)
            if text is not None:
                return text
        encoding = self.encoding if code_page is None else encoding_for_code_page(code_page)
        return self._decode_builtin(data, encoding)

    def decode_compressed(self, text: str, code_page: int | None = None) -> str:
        """Decode a BIFF8 "compressed" string that xlrd returned as latin-1.

        Compressed strings store one byte per character; xlrd maps each byte
        to the code point of the same value. Text holding any character above
        U+00FF came from a UTF-16 string and is returned unchanged.
        """
        if text.isascii() or any(ord(ch) > 0xFF for ch in text):
            return text
        if code_page == _UNICODE_CODE_PAGE:
            code_page = None
        return self.decode(text.encode("latin-1"), code_page)

    def _decode_with_helper(self, data: bytes) -> str | None:
        try:
            out = run_command(self.helper, input=data, timeout=self.timeout)
            return out.decode("utf-8")
        except (CommandTimeoutError, ExternalToolUnavailableError, IoError) as exc:
            logger.warning("Decoder helper unavailable, using built-in table: %s", exc)
        except UnicodeDecodeError:
            logger.warning("Decoder helper produced invalid UTF-8, using built-in table")
        return None

    def _decode_builtin(self, data: bytes, encoding: str) -> str:
        if not self.strict:
            return data.decode(encoding, errors="replace")
        try:
            return data.decode(encoding, errors="strict")
        except UnicodeDecodeError as exc:
            raise DecodeError(
                "undecodable byte sequence",
                encoding=encoding,
                offset=exc.start,
                bytes=data[exc.start:exc.end].hex(),
            ) from exc

    # ── codec bridge ─────────────────────────────────────────────

    def codec_name(self) -> str:
        """Register this decoder as a Python codec and return its name.

        xlrd decodes pre-BIFF8 strings with ``str(raw, encoding)``, so
        handing it this name routes every cell through :meth:`decode`.
        """
        config = repr((self.helper, self.timeout)).encode("utf-8")
        digest = hashlib.sha1(config).hexdigest()[:12]
        name = f"fcupdater_{self.mode}_cp{self.code_page}_{digest}"
        _REGISTRY.setdefault(name, self)
        return name

    def _codec_decode(self, data: Any, errors: str = "strict") -> tuple[str, int]:
        raw = bytes(data)
        return self.decode(raw), len(raw)

    def _codec_encode(self, text: str, errors: str = "strict") -> tuple[bytes, int]:
        return text.encode(self.encoding, errors), len(text)


def _search(name: str) -> codecs.CodecInfo | None:
    decoder = _REGISTRY.get(name)
    if decoder is None:
        return None
    return codecs.CodecInfo(
        name=name,
        encode=decoder._codec_encode,
        decode=decoder._codec_decode,
    )


codecs.register(_search)
