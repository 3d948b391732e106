"""Tests for the device HTTP client."""

import hashlib

import httpx
import pytest

from mcu_sync.device_client import DeviceClient, DeviceError, parse_multistatus
from mcu_sync.snapshot import NodeKind


class TestParseMultistatus:
    """parse_multistatus tests."""

    def test_files_and_directories(self):
        """Test entries with a content length are files."""
        xml = (
            '<?xml version="1.0"?>'
            '<d:multistatus xmlns:d="DAV:">'
            "<d:response><d:href>/fs/</d:href><d:propstat><d:prop/></d:propstat></d:response>"
            "<d:response><d:href>/fs/lib/</d:href>"
            "<d:propstat><d:prop></d:prop></d:propstat></d:response>"
            "<d:response><d:href>/fs/lib/my%20file.js</d:href><d:propstat><d:prop>"
            "<d:getcontentlength>12</d:getcontentlength><md5sum>ABCDEF</md5sum>"
            "</d:prop></d:propstat></d:response>"
            "</d:multistatus>"
        )
        stats = parse_multistatus(xml)

        assert [(s.relative_path, s.kind) for s in stats] == [
            ("lib", NodeKind.DIR),
            ("lib/my file.js", NodeKind.FILE),
        ]
        assert stats[1].size == 12
        assert stats[1].content_hash == "abcdef"

    def test_missing_md5(self):
        """Test a file without md5sum has no content hash."""
        xml = (
            '<multistatus xmlns="DAV:"><response><href>http://dev/fs/a.txt</href>'
            "<propstat><prop><getcontentlength>3</getcontentlength></prop></propstat>"
            "</response></multistatus>"
        )
        (stat,) = parse_multistatus(xml)

        assert stat.relative_path == "a.txt"
        assert stat.content_hash is None

    def test_invalid_document(self):
        """Test garbage is reported as a device error."""
        with pytest.raises(DeviceError):
            parse_multistatus("not xml")
        with pytest.raises(DeviceError):
            parse_multistatus("<html></html>")


class TestDeviceClient:
    """DeviceClient tests against the in-memory device."""

    def test_list_files(self, fake_device, device_client):
        """Test listing returns every entry and the had-put flag."""
        fake_device.add_file("main.js", b"print()")
        fake_device.add_file("lib/util.js", b"x")

        stats, had_put = device_client.list_files()

        assert had_put is True
        by_path = {s.relative_path: s for s in stats}
        assert set(by_path) == {"main.js", "lib", "lib/util.js"}
        assert by_path["main.js"].content_hash == hashlib.md5(b"print()").hexdigest()
        assert by_path["lib"].kind == NodeKind.DIR

    def test_list_files_requests_md5(self):
        """Test the listing asks the device for checksums."""
        seen = {}

        def handler(request):
            seen["md5"] = request.headers.get("lowrmt-md5")
            return httpx.Response(207, text='<multistatus xmlns="DAV:"/>')

        client = DeviceClient("http://device.local", transport=httpx.MockTransport(handler))
        stats, had_put = client.list_files()
        client.close()

        assert stats == []
        assert had_put is False
        assert seen["md5"] == "1"

    def test_list_files_excludes(self, fake_device, device_client):
        """Test excluded paths and everything below them are left out."""
        fake_device.add_file("main.js", b"x")
        fake_device.add_file("node_modules/pkg/index.js", b"y")

        stats, _ = device_client.list_files(["node_modules"])

        assert [s.relative_path for s in stats] == ["main.js"]

    def test_had_put_flag(self, fake_device, device_client):
        """Test a fresh device reports no prior sync until marked."""
        fake_device.had_put = False
        assert device_client.list_files()[1] is False

        device_client.set_had_put()

        assert device_client.list_files()[1] is True

    def test_file_round_trip(self, fake_device, device_client):
        """Test write, checksum, read and delete of one file."""
        device_client.make_dir("lib")
        device_client.write_file("lib/a.js", b"abc")

        assert fake_device.files["lib/a.js"] == b"abc"
        assert device_client.read_file("lib/a.js") == b"abc"
        assert device_client.checksum("lib/a.js") == (3, hashlib.md5(b"abc").hexdigest())

        device_client.delete("lib")

        assert "lib/a.js" not in fake_device.files
        assert device_client.checksum("lib/a.js") is None

    def test_tolerated_statuses(self, fake_device, device_client):
        """Test deleting a missing path and recreating a directory succeed."""
        fake_device.add_dir("lib")

        device_client.make_dir("lib")
        device_client.delete("nothing")

    def test_errors_raise_device_error(self, fake_device, device_client):
        """Test failing requests map to DeviceError."""
        fake_device.fail_writes.add("a.js")

        with pytest.raises(DeviceError):
            device_client.write_file("a.js", b"x")
        with pytest.raises(DeviceError):
            device_client.read_file("missing.js")
        with pytest.raises(DeviceError):
            device_client.write_file("no/parent.js", b"x")

    def test_connection_error(self):
        """Test an unreachable device raises DeviceError."""

        def handler(request):
            raise httpx.ConnectError("refused", request=request)

        with DeviceClient("http://device.local", transport=httpx.MockTransport(handler)) as c:
            with pytest.raises(DeviceError):
                c.list_files()

    def test_program_api(self, fake_device, device_client):
        """Test status, restart and monitor endpoints."""
        fake_device.status = "stopped"
        fake_device.monitor_lines = ["line 1", "line 2"]

        assert device_client.program_status() == "stopped"
        device_client.restart_program()
        assert fake_device.restarts == 1

        lines = []
        device_client.monitor(lines.append)
        assert lines == ["line 1", "line 2"]

    def test_basic_auth(self):
        """Test credentials are sent with every request."""
        seen = []

        def handler(request):
            seen.append(request.headers.get("Authorization"))
            return httpx.Response(200, json={"status": "running"})

        client = DeviceClient(
            "http://device.local/",
            username="admin",
            password="secret",
            transport=httpx.MockTransport(handler),
        )
        client.program_status()
        client.close()

        assert seen[0].startswith("Basic ")
