"""Pytest configuration and fixtures."""

import hashlib
from typing import Dict, Set
from urllib.parse import quote, unquote

import httpx
import pytest

from mcu_sync.config_loader import Config
from mcu_sync.device_client import DeviceClient
from mcu_sync.snapshot import DirNode, FileNode


def _md5(data: bytes) -> str:
    return hashlib.md5(data).hexdigest()


class FakeDevice:
    """In-memory device speaking the /fs WebDAV dialect and the /api endpoints."""

    def __init__(self):
        self.files: Dict[str, bytes] = {}
        self.dirs: Set[str] = set()
        self.had_put = True
        self.status = "running"
        self.restarts = 0
        self.monitor_lines = ["hello from device"]
        self.report_md5 = True
        self.fail_writes: Set[str] = set()
        self.corrupt_writes: Set[str] = set()
        self.requests = []

    def add_file(self, path: str, data: bytes) -> None:
        parts = path.split("/")
        for i in range(1, len(parts)):
            self.dirs.add("/".join(parts[:i]))
        self.files[path] = data

    def add_dir(self, path: str) -> None:
        parts = path.split("/")
        for i in range(1, len(parts) + 1):
            self.dirs.add("/".join(parts[:i]))

    def deleted_calls(self):
        return [p for m, p in self.requests if m == "DELETE"]

    def _parent_exists(self, rel: str) -> bool:
        parent = rel.rpartition("/")[0]
        return not parent or parent in self.dirs

    def _response_xml(self, rel: str) -> str:
        href = "/fs/" + quote(rel)
        if rel in self.files:
            data = self.files[rel]
            md5 = f"<md5sum>{_md5(data)}</md5sum>" if self.report_md5 else ""
            prop = f"<D:getcontentlength>{len(data)}</D:getcontentlength>{md5}"
        else:
            href += "/" if rel else ""
            prop = ""
        return (
            f"<D:response><D:href>{href}</D:href>"
            f"<D:propstat><D:prop>{prop}</D:prop></D:propstat></D:response>"
        )

    def _multistatus(self, paths) -> str:
        body = "".join(self._response_xml(p) for p in paths)
        return f'<?xml version="1.0"?><D:multistatus xmlns:D="DAV:">{body}</D:multistatus>'

    def handler(self, request: httpx.Request) -> httpx.Response:
        path = unquote(request.url.path)
        method = request.method
        self.requests.append((method, path))

        if path == "/api/SetLowSyncHadPut":
            self.had_put = True
            return httpx.Response(200)
        if path == "/api/GetProgramStatus":
            return httpx.Response(200, json={"status": self.status})
        if path == "/api/RestartProgram":
            self.restarts += 1
            return httpx.Response(200)
        if path == "/api/Monitor":
            return httpx.Response(200, text="\n".join(self.monitor_lines))
        if not path.startswith("/fs"):
            return httpx.Response(404)

        rel = path[len("/fs") :].strip("/")
        if method == "PROPFIND":
            if request.headers.get("Depth") == "0":
                if rel and rel not in self.files and rel not in self.dirs:
                    return httpx.Response(404)
                return httpx.Response(207, text=self._multistatus([rel]))
            paths = [""] + sorted(self.dirs | set(self.files))
            headers = {"lowrmt-had-put": "1" if self.had_put else "0"}
            return httpx.Response(207, text=self._multistatus(paths), headers=headers)
        if method == "GET":
            if rel not in self.files:
                return httpx.Response(404)
            return httpx.Response(200, content=self.files[rel])
        if method == "PUT":
            if rel in self.fail_writes:
                return httpx.Response(500)
            if not self._parent_exists(rel):
                return httpx.Response(409)
            data = request.content
            if rel in self.corrupt_writes:
                data += b"!"
            self.files[rel] = data
            return httpx.Response(201)
        if method == "MKCOL":
            if rel in self.dirs or rel in self.files:
                return httpx.Response(405)
            if not self._parent_exists(rel):
                return httpx.Response(409)
            self.dirs.add(rel)
            return httpx.Response(201)
        if method == "DELETE":
            if rel in self.files:
                del self.files[rel]
                return httpx.Response(204)
            if rel in self.dirs:
                prefix = rel + "/"
                self.dirs = {d for d in self.dirs if d != rel and not d.startswith(prefix)}
                self.files = {f: v for f, v in self.files.items() if not f.startswith(prefix)}
                return httpx.Response(204)
            return httpx.Response(404)
        return httpx.Response(405)


@pytest.fixture
def fake_device():
    """In-memory device."""
    return FakeDevice()


@pytest.fixture
def device_client(fake_device):
    """DeviceClient wired to the fake device."""
    client = DeviceClient(
        "http://device.local", transport=httpx.MockTransport(fake_device.handler)
    )
    yield client
    client.close()


@pytest.fixture
def device_factory():
    """Build further devices with their clients, closed after the test."""
    clients = []

    def _make():
        fake = FakeDevice()
        client = DeviceClient("http://device.local", transport=httpx.MockTransport(fake.handler))
        clients.append(client)
        return fake, client

    yield _make
    for client in clients:
        client.close()


@pytest.fixture
def sync_dir(tmp_path):
    """Empty local sync directory."""
    path = tmp_path / "sync"
    path.mkdir()
    return path


@pytest.fixture
def sample_config(tmp_path, sync_dir):
    """Config pointing at the temporary sync directory."""
    return Config(
        {
            "sync_dir": str(sync_dir),
            "device": {"url": "http://device.local"},
            "base_file": str(tmp_path / "base.db"),
            "conflict_policy": "ask",
            "restart": False,
            "monitor": False,
            "logging": {"file_path": str(tmp_path / "sync.log")},
        }
    )


@pytest.fixture
def build_tree():
    """Build a snapshot tree from a nested dict: bytes are files, dicts are directories."""

    def _build(spec: dict) -> DirNode:
        node = DirNode()
        for name, value in spec.items():
            if isinstance(value, dict):
                node.children[name] = _build(value)
            else:
                node.children[name] = FileNode(len(value), _md5(value))
        return node

    return _build
