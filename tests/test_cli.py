import argparse

import pytest
from aiohttp import test_utils, web

from stashbox import cli
from stashbox.config import Settings
from stashbox.models import DownloadGrant
from stashbox.storage.http import HttpApiStorage
from stashbox.storage.s3 import S3Storage

from conftest import PASSWORD, FakeBackend


@pytest.fixture
def clean_env(monkeypatch):
    for var in [
        "STASHBOX_STORAGE",
        "STASHBOX_API_URL",
        "STASHBOX_S3_BUCKET",
        "STASHBOX_S3_REGION",
        "STASHBOX_S3_PREFIX",
        "STASHBOX_S3_ENDPOINT",
        "STASHBOX_PASSWORD_SHA256",
        "STASHBOX_PASSWORD",
        "STASHBOX_TIMEOUT",
    ]:
        monkeypatch.delenv(var, raising=False)
    return monkeypatch


@pytest.fixture
def fake_backend(clean_env):
    backend = FakeBackend()
    clean_env.setattr(cli, "create_storage_backend", lambda settings: backend)
    clean_env.setenv("STASHBOX_PASSWORD", PASSWORD)
    return backend


class TestSettings:
    def test_defaults(self, clean_env):
        settings = Settings.from_args(argparse.Namespace())
        assert settings.storage == "http"
        assert settings.api_url == "http://localhost:8787"
        assert settings.timeout is None

    def test_env_fallback(self, clean_env):
        clean_env.setenv("STASHBOX_STORAGE", "s3")
        clean_env.setenv("STASHBOX_S3_BUCKET", "vault")
        clean_env.setenv("STASHBOX_TIMEOUT", "2.5")

        settings = Settings.from_args(argparse.Namespace(storage=None))

        assert settings.storage == "s3"
        assert settings.s3_bucket == "vault"
        assert settings.timeout == 2.5

    def test_arguments_win_over_env(self, clean_env):
        clean_env.setenv("STASHBOX_API_URL", "https://env.example.com")

        settings = Settings.from_args(argparse.Namespace(api_url="https://arg.example.com"))

        assert settings.api_url == "https://arg.example.com"

    def test_rejects_non_numeric_timeout(self, clean_env):
        clean_env.setenv("STASHBOX_TIMEOUT", "soon")

        with pytest.raises(ValueError, match="soon"):
            Settings.from_args(argparse.Namespace())


class TestCreateStorageBackend:
    def test_http(self):
        backend = cli.create_storage_backend(Settings(api_url="https://x.test", timeout=3))
        assert isinstance(backend, HttpApiStorage)
        assert backend.timeout == 3

    def test_s3(self):
        backend = cli.create_storage_backend(
            Settings(storage="s3", s3_bucket="vault", password_sha256="ab")
        )
        assert isinstance(backend, S3Storage)
        assert backend.bucket == "vault"

    def test_s3_requires_bucket(self, capsys):
        with pytest.raises(SystemExit) as exc_info:
            cli.create_storage_backend(Settings(storage="s3", password_sha256="ab"))

        assert exc_info.value.code == 1
        assert "--s3-bucket" in capsys.readouterr().out

    def test_s3_requires_password_digest(self, capsys):
        with pytest.raises(SystemExit):
            cli.create_storage_backend(Settings(storage="s3", s3_bucket="vault"))

        assert "--password-sha256" in capsys.readouterr().out

    def test_unknown_storage(self, capsys):
        with pytest.raises(SystemExit):
            cli.create_storage_backend(Settings(storage="ftp"))

        assert "Unknown storage type: ftp" in capsys.readouterr().out


class TestParser:
    def test_upload_takes_several_files(self):
        args = cli.build_parser().parse_args(["upload", "a.txt", "b.txt", "--timeout", "5"])
        assert args.files == ["a.txt", "b.txt"]
        assert args.timeout == 5.0

    def test_rm_yes_flag(self):
        args = cli.build_parser().parse_args(["rm", "a.txt", "-y"])
        assert args.name == "a.txt"
        assert args.yes is True

    def test_command_is_required(self):
        with pytest.raises(SystemExit):
            cli.build_parser().parse_args([])


class TestCommands:
    def test_version(self, capsys):
        cli.main(["version"])
        assert "stashbox version" in capsys.readouterr().out

    def test_ls_prints_listing(self, fake_backend, capsys):
        fake_backend.add("a.txt", 2048)

        with pytest.raises(SystemExit) as exc_info:
            cli.main(["ls"])

        assert exc_info.value.code == 0
        out = capsys.readouterr().out
        assert "Files (1)" in out
        assert "2 KB" in out

    def test_wrong_password_exits_non_zero(self, fake_backend, clean_env, capsys):
        clean_env.setenv("STASHBOX_PASSWORD", "nope")

        with pytest.raises(SystemExit) as exc_info:
            cli.main(["login"])

        assert exc_info.value.code == 1
        assert "Incorrect password" in capsys.readouterr().out

    def test_bad_timeout_reports_error(self, fake_backend, clean_env, capsys):
        clean_env.setenv("STASHBOX_TIMEOUT", "soon")

        with pytest.raises(SystemExit) as exc_info:
            cli.main(["ls"])

        assert exc_info.value.code == 1
        assert "Error: timeout must be a number of seconds" in capsys.readouterr().out
        assert fake_backend.calls == []

    def test_upload_files(self, fake_backend, tmp_path, capsys):
        first = tmp_path / "a.txt"
        first.write_text("aaa")
        second = tmp_path / "b.txt"
        second.write_text("bb")

        with pytest.raises(SystemExit) as exc_info:
            cli.main(["upload", str(first), str(second)])

        assert exc_info.value.code == 0
        assert sorted(fake_backend.objects) == ["a.txt", "b.txt"]
        assert fake_backend.objects["a.txt"].size_bytes == 3

    def test_upload_missing_path(self, fake_backend, tmp_path, capsys):
        with pytest.raises(SystemExit) as exc_info:
            cli.main(["upload", str(tmp_path / "nope.txt")])

        assert exc_info.value.code == 1
        assert fake_backend.calls == []
        assert "not a file" in capsys.readouterr().out

    def test_rm_with_yes(self, fake_backend):
        fake_backend.add("a.txt")

        with pytest.raises(SystemExit) as exc_info:
            cli.main(["rm", "a.txt", "--yes"])

        assert exc_info.value.code == 0
        assert fake_backend.objects == {}

    def test_download_missing_file(self, fake_backend, capsys):
        with pytest.raises(SystemExit) as exc_info:
            cli.main(["download", "gone.txt"])

        assert exc_info.value.code == 1
        assert "File not found: gone.txt" in capsys.readouterr().out


class TestSaveGrant:
    @pytest.mark.asyncio
    async def test_writes_fetched_bytes(self, tmp_path):
        async def serve(request):
            return web.Response(body=b"file-bytes")

        app = web.Application()
        app.router.add_get("/signed", serve)
        server = test_utils.TestServer(app)
        await server.start_server()
        try:
            grant = DownloadGrant(url=str(server.make_url("/signed")), expires_in_seconds=60)
            destination = tmp_path / "out.bin"

            written = await cli.save_grant(grant, destination)
        finally:
            await server.close()

        assert written == len(b"file-bytes")
        assert destination.read_bytes() == b"file-bytes"
