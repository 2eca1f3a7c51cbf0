"""Addressable resources: local files and HTTP(S) URLs.

A Resource wraps a location the loader reads documents and assets from.
Bare filesystem paths are normalised into absolute ``file://`` URLs so that
relative asset lookup works the same way for every scheme.
"""

import logging
import posixpath
from pathlib import Path
from urllib.parse import unquote, urlparse

import httpx

from .errors import DecodeError, ResourceError

logger = logging.getLogger(__name__)

FILE_SCHEME = "file://"
HTTP_TIMEOUT = 30.0


def to_url(location: str) -> str:
    """Return a URL for a path or URL."""
    if "://" in location:
        return location
    return FILE_SCHEME + str(Path(location).expanduser().absolute())


def url_split(url: str) -> tuple[str, str]:
    """Split a URL into (parent URL, leaf name)."""
    url = url.rstrip("/")
    parent, _, name = url.rpartition("/")
    if parent.endswith("://"):  # e.g. file:///name
        parent += "/"
    return parent, name


def url_path_join(base: str, relative: str) -> str:
    """Join a relative path onto a URL, normalising ``.`` and ``..`` segments."""
    parsed = urlparse(base)
    joined = posixpath.normpath(posixpath.join(parsed.path or "/", relative))
    return parsed._replace(path=joined).geturl()


class Resource:
    """A document or asset location with an optional credential."""

    def __init__(self, location: str, credential: str | None = None):
        if not location:
            raise ResourceError("resource location was empty")
        self.url = to_url(location)
        self.credential = credential
        self.parsed = urlparse(self.url)

    def __repr__(self) -> str:
        return f"Resource({self.url!r})"

    @property
    def scheme(self) -> str:
        return self.parsed.scheme

    @property
    def path(self) -> str:
        return unquote(self.parsed.path)

    @property
    def is_file(self) -> bool:
        return self.scheme == "file"

    @property
    def parent_url(self) -> str:
        return url_split(self.url)[0]

    @property
    def directory_path(self) -> str:
        return posixpath.dirname(self.path)

    @property
    def name(self) -> str:
        return url_split(self.url)[1]

    @property
    def extension(self) -> str:
        return posixpath.splitext(self.name)[1]

    def join(self, relative: str) -> "Resource":
        """Resource for a path relative to this resource's directory."""
        return Resource(url_path_join(self.parent_url.rstrip("/") + "/", relative), self.credential)

    def exists(self) -> bool:
        if self.is_file:
            return Path(self.path).exists()
        if self.scheme in ("http", "https"):
            try:
                response = httpx.head(self.url, headers=self._headers(), timeout=HTTP_TIMEOUT)
            except httpx.HTTPError:
                return False
            return response.status_code < 400
        return False

    def download(self) -> bytes:
        if self.is_file:
            try:
                return Path(self.path).read_bytes()
            except OSError as e:
                raise ResourceError(f"failed to read {self.url}: {e}") from e
        if self.scheme in ("http", "https"):
            try:
                response = httpx.get(
                    self.url,
                    headers=self._headers(),
                    timeout=HTTP_TIMEOUT,
                    follow_redirects=True,
                )
                response.raise_for_status()
            except httpx.HTTPError as e:
                raise ResourceError(f"failed to download {self.url}: {e}") from e
            return response.content
        raise ResourceError(f"unsupported scheme: {self.scheme!r} in {self.url}")

    def download_text(self) -> str:
        content = self.download()
        try:
            return content.decode("utf-8")
        except UnicodeDecodeError as e:
            raise DecodeError(f"{self.url} is not valid UTF-8 text: {e}") from e

    def list(self) -> list["Resource"]:
        """List entries of a directory resource, sorted by name."""
        if not self.is_file:
            raise ResourceError(f"listing is not supported for {self.url}")
        directory = Path(self.path)
        if not directory.is_dir():
            raise ResourceError(f"not a directory: {self.url}")
        return [
            Resource(str(entry), self.credential)
            for entry in sorted(directory.iterdir(), key=lambda p: p.name)
        ]

    def is_directory(self) -> bool:
        return self.is_file and Path(self.path).is_dir()

    def copy_to(self, destination: "Resource") -> None:
        if not destination.is_file:
            raise ResourceError(f"cannot copy into {destination.url}")
        content = self.download()
        target = Path(destination.path)
        target.parent.mkdir(parents=True, exist_ok=True)
        target.write_bytes(content)
        logger.debug("copied %s to %s", self.url, destination.url)

    def as_dict(self) -> dict:
        """Provenance attributes of this resource."""
        return {
            "URL": self.url,
            "Name": self.name,
            "Extension": self.extension,
            "Credential": self.credential or "",
        }

    def _headers(self) -> dict[str, str]:
        if self.credential:
            return {"Authorization": f"Bearer {self.credential}"}
        return {}
