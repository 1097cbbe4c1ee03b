"""
Resolution of link targets into absolute gemini addresses.
"""

from dataclasses import dataclass
from typing import Optional, Union
from urllib.parse import SplitResult, urljoin, urlsplit


GEMINI_SCHEME = "gemini"
DEFAULT_PORT = 1965


class InvalidAddress(ValueError):
    """Raised when a link target cannot become a crawlable gemini address."""
    pass


@dataclass(frozen=True)
class Address:
    """An absolute gemini address with an explicit port."""
    host: str
    port: int
    path: str = ""
    query: str = ""
    fragment: str = ""
    scheme: str = GEMINI_SCHEME
    userinfo: str = ""

    def __post_init__(self):
        if self.scheme != GEMINI_SCHEME:
            raise InvalidAddress(f"Invalid URL scheme: {self.scheme!r}")
        if not self.host:
            raise InvalidAddress("Address has no host")
        if not isinstance(self.port, int) or not 0 < self.port < 65536:
            raise InvalidAddress(f"Invalid port: {self.port!r}")

    @property
    def netloc(self) -> str:
        host = f"[{self.host}]" if ":" in self.host else self.host
        netloc = f"{host}:{self.port}"
        if self.userinfo:
            netloc = f"{self.userinfo}@{netloc}"
        return netloc

    def __str__(self) -> str:
        url = f"{self.scheme}://{self.netloc}{self.path}"
        if self.query:
            url += f"?{self.query}"
        if self.fragment:
            url += f"#{self.fragment}"
        return url

    @property
    def request_line(self) -> bytes:
        """The request sent to a gemini server for this address."""
        return f"{self}\r\n".encode('utf-8')


def _split(raw: str) -> SplitResult:
    try:
        return urlsplit(raw)
    except ValueError as e:
        raise InvalidAddress(f"Could not parse {raw!r}: {e}") from e


def _to_address(parts: SplitResult) -> Address:
    try:
        port = parts.port
    except ValueError as e:
        raise InvalidAddress(f"Invalid port in {parts.geturl()!r}: {e}") from e

    userinfo = ""
    if "@" in parts.netloc:
        userinfo = parts.netloc.rsplit("@", 1)[0]

    return Address(
        scheme=parts.scheme,
        host=parts.hostname or "",
        port=DEFAULT_PORT if port is None else port,
        path=parts.path,
        query=parts.query,
        fragment=parts.fragment,
        userinfo=userinfo,
    )


def _join(base: Union[Address, str], raw: str) -> str:
    """
    Join a relative reference onto a gemini base.

    urljoin only resolves relative references for schemes listed in
    urllib.parse.uses_relative, so the join is done on the scheme-relative
    form of the base and the scheme put back afterwards.
    """
    if not isinstance(base, Address):
        base = resolve(None, base)
    scheme_relative = str(base)[len(base.scheme) + 1:]
    return f"{base.scheme}:{urljoin(scheme_relative, raw)}"


def resolve(base: Optional[Union[Address, str]], raw: str) -> Address:
    """
    Turn a possibly relative link target into an absolute gemini address.

    An absolute parse is attempted first; only a relative reference falls
    back to joining against ``base``. A missing port is set to the gemini
    default, an explicit one is kept.

    Raises:
        InvalidAddress: if ``raw`` cannot be parsed, is relative with no
            base, or does not use the gemini scheme.
    """
    raw = raw.strip()
    if not raw:
        raise InvalidAddress("Empty address")

    parts = _split(raw)
    if not parts.scheme:
        if base is None:
            raise InvalidAddress(f"Relative URL without a base: {raw!r}")
        parts = _split(_join(base, raw))

    if parts.scheme != GEMINI_SCHEME:
        raise InvalidAddress(f"Invalid URL scheme: {parts.scheme!r} in {raw!r}")

    return _to_address(parts)

