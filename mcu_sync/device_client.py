"""HTTP client for the microcontroller's filesystem and program API."""

import xml.etree.ElementTree as ET
from typing import Callable, List, Optional, Tuple
from urllib.parse import quote, unquote, urlsplit

import httpx

from mcu_sync.filesystem_utils import matches_any_subpath, normalize_path
from mcu_sync.logging_setup import get_logger
from mcu_sync.snapshot import NodeKind, StatEntry

logger = get_logger()

FS_PREFIX = "/fs"
MD5_HEADER = "lowrmt-md5"
HAD_PUT_HEADER = "lowrmt-had-put"

PROPFIND_HEADERS = {
    "Content-Type": "application/xml;charset=UTF-8",
    MD5_HEADER: "1",
}


class DeviceError(Exception):
    """Raised when a request to the device fails."""

    pass


def _local_name(tag: str) -> str:
    """Strip an XML namespace from a tag name."""
    return tag.rsplit("}", 1)[-1]


def _find_child(element: ET.Element, name: str) -> Optional[ET.Element]:
    for child in element:
        if _local_name(child.tag) == name:
            return child
    return None


def _find_descendant(element: ET.Element, name: str) -> Optional[ET.Element]:
    for child in element.iter():
        if child is not element and _local_name(child.tag) == name:
            return child
    return None


def parse_multistatus(xml_text: str) -> List[StatEntry]:
    """Parse a WebDAV multistatus listing into stat entries.

    Entries whose prop carries ``getcontentlength`` are files, everything
    else is a directory. The ``/fs`` root itself is left out.

    Raises:
        DeviceError: If the document is not a multistatus listing
    """
    try:
        root = ET.fromstring(xml_text)
    except ET.ParseError as e:
        raise DeviceError(f"Invalid listing from device: {e}") from e

    if _local_name(root.tag) != "multistatus":
        raise DeviceError(f"Unexpected listing root element: {_local_name(root.tag)}")

    stats = []
    for response in root:
        if _local_name(response.tag) != "response":
            continue
        href = _find_child(response, "href")
        if href is None or not href.text:
            continue

        href_path = unquote(urlsplit(href.text.strip()).path)
        if not href_path.startswith(FS_PREFIX):
            logger.debug(f"Ignoring listing entry outside {FS_PREFIX}: {href_path}")
            continue
        relative_path = normalize_path(href_path[len(FS_PREFIX) :])
        if not relative_path:
            continue

        prop = _find_descendant(response, "prop")
        length = _find_child(prop, "getcontentlength") if prop is not None else None
        if length is not None:
            md5 = _find_child(prop, "md5sum")
            content_hash = (md5.text or "").strip().lower() if md5 is not None else ""
            stats.append(
                StatEntry(
                    relative_path,
                    NodeKind.FILE,
                    size=int((length.text or "0").strip()),
                    content_hash=content_hash or None,
                )
            )
        else:
            stats.append(StatEntry(relative_path, NodeKind.DIR))
    return stats


class DeviceClient:
    """Client for the device HTTP API."""

    def __init__(
        self,
        base_url: str,
        username: Optional[str] = None,
        password: Optional[str] = None,
        timeout: float = 30,
        transport: Optional[httpx.BaseTransport] = None,
    ):
        """Initialize client.

        Args:
            base_url: Device URL, e.g. ``http://192.168.0.20``
            username: Optional HTTP basic auth user
            password: Optional HTTP basic auth password
            timeout: Request timeout in seconds
            transport: Optional httpx transport (tests pass a MockTransport)
        """
        self.base_url = base_url.rstrip("/")
        auth = (username or "", password) if password is not None else None
        self.client = httpx.Client(
            base_url=self.base_url,
            timeout=timeout,
            auth=auth,
            transport=transport,
        )

    def close(self) -> None:
        """Close the underlying HTTP client."""
        self.client.close()

    def __enter__(self) -> "DeviceClient":
        return self

    def __exit__(self, *exc_info) -> None:
        self.close()

    @staticmethod
    def _fs_url(path: str) -> str:
        norm = normalize_path(path)
        return f"{FS_PREFIX}/{quote(norm)}" if norm else f"{FS_PREFIX}/"

    def _request(self, method: str, url: str, ok_statuses=(), **kwargs) -> httpx.Response:
        """Send a request, mapping transport and HTTP errors to DeviceError."""
        try:
            response = self.client.request(method, url, **kwargs)
        except httpx.HTTPError as e:
            raise DeviceError(f"{method} {url} failed: {e}") from e
        if response.status_code in ok_statuses:
            return response
        if response.is_error:
            raise DeviceError(f"{method} {url} failed: HTTP {response.status_code}")
        return response

    def list_files(
        self, exclude_globs: Optional[List[str]] = None
    ) -> Tuple[List[StatEntry], bool]:
        """List the whole device filesystem.

        Args:
            exclude_globs: Globs checked against each path and its ancestors

        Returns:
            Tuple of (stat entries, whether the device had a prior sync upload)

        Raises:
            DeviceError: If the listing cannot be fetched or parsed
        """
        response = self._request("PROPFIND", f"{FS_PREFIX}/", headers=PROPFIND_HEADERS)
        had_put = response.headers.get(HAD_PUT_HEADER) == "1"

        globs = [g for g in (exclude_globs or []) if g]
        stats = [
            stat
            for stat in parse_multistatus(response.text)
            if not matches_any_subpath(stat.relative_path, globs)
        ]
        logger.info(f"Listed {len(stats)} items on device (had_put={had_put})")
        return stats, had_put

    def set_had_put(self) -> None:
        """Mark the device filesystem as managed by this tool."""
        self._request("POST", "/api/SetLowSyncHadPut")
        logger.info("Marked device as synced")

    def checksum(self, path: str) -> Optional[Tuple[Optional[int], Optional[str]]]:
        """Return ``(size, md5)`` for a file on the device, or None if absent."""
        response = self._request(
            "PROPFIND",
            self._fs_url(path),
            ok_statuses=(404,),
            headers={**PROPFIND_HEADERS, "Depth": "0"},
        )
        if response.status_code == 404:
            return None
        for stat in parse_multistatus(response.text):
            if stat.relative_path == normalize_path(path) and stat.kind == NodeKind.FILE:
                return stat.size, stat.content_hash
        return None

    def read_file(self, path: str) -> bytes:
        """Download a file from the device."""
        return self._request("GET", self._fs_url(path)).content

    def write_file(self, path: str, data: bytes) -> None:
        """Upload a file to the device, replacing any existing one."""
        self._request("PUT", self._fs_url(path), content=data)
        logger.debug(f"Uploaded {path} ({len(data)} bytes)")

    def make_dir(self, path: str) -> None:
        """Create a directory on the device; an existing one is fine."""
        self._request("MKCOL", self._fs_url(path), ok_statuses=(405,))
        logger.debug(f"Created device directory {path}")

    def delete(self, path: str) -> None:
        """Delete a file or directory tree; a missing target is fine."""
        response = self._request("DELETE", self._fs_url(path), ok_statuses=(404,))
        if response.status_code == 404:
            logger.warning(f"Device path already gone: {path}")

    def program_status(self) -> str:
        """Return the device program status (e.g. ``running`` or ``stopped``)."""
        response = self._request("GET", "/api/GetProgramStatus")
        try:
            return str(response.json().get("status", "unknown"))
        except ValueError as e:
            raise DeviceError(f"Invalid program status response: {e}") from e

    def restart_program(self) -> None:
        """Restart the program running on the device."""
        self._request("POST", "/api/RestartProgram")
        logger.info("Requested program restart")

    def monitor(self, sink: Callable[[str], None] = print) -> None:
        """Stream program output lines to ``sink`` until the device closes it."""
        try:
            with self.client.stream("GET", "/api/Monitor", timeout=None) as response:
                if response.is_error:
                    raise DeviceError(f"Monitor failed: HTTP {response.status_code}")
                for line in response.iter_lines():
                    sink(line)
        except httpx.HTTPError as e:
            raise DeviceError(f"Monitor connection failed: {e}") from e
