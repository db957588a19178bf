"""Tests for engine/build.py module.

The docker client is replaced with a MagicMock; no engine is needed.
"""

import tarfile
from pathlib import Path
from unittest.mock import MagicMock, patch

import pytest
from docker.errors import APIError, DockerException
from requests.exceptions import ConnectionError as RequestsConnectionError
from requests.exceptions import ReadTimeout

from openeuler_baseimage.engine.build import (
    BUILD_TIMEOUT,
    BuildInvocationError,
    build_image,
    collect_build_output,
    create_context_tar,
    list_images,
    pull_image,
)


@pytest.fixture
def build_dir(tmp_path) -> Path:
    """A prepared directory with a Dockerfile and rootfs archive."""
    directory = tmp_path / "openEuler" / "22.03-lts" / "x86_64"
    directory.mkdir(parents=True)
    (directory / "Dockerfile").write_text("FROM scratch\n")
    (directory / "openEuler-docker-rootfs.x86_64.tar.xz").write_bytes(b"rootfs")
    (directory / "nested").mkdir()
    (directory / "nested" / "extra.txt").write_text("extra")
    return directory


class TestCreateContextTar:
    """Tests for create_context_tar function."""

    def test_includes_everything_recursively(self, build_dir, tmp_path):
        """Should pack every file relative to the directory root."""
        tar_path = create_context_tar(build_dir, tmp_path / "context.tar")

        with tarfile.open(tar_path) as tar:
            names = set(tar.getnames())

        assert {
            "Dockerfile",
            "openEuler-docker-rootfs.x86_64.tar.xz",
            "nested",
            "nested/extra.txt",
        } <= names


class TestCollectBuildOutput:
    """Tests for collect_build_output function."""

    def test_stream_lines(self):
        """Should split stream entries into non-empty lines."""
        stream = [
            {"stream": "Step 1/3 : FROM scratch\n"},
            {"stream": "\n"},
            {"stream": " ---> Running\nSuccessfully built abc\n"},
            {"status": "Done"},
            {"aux": {"ID": "sha256:abc"}},
        ]
        assert collect_build_output(stream) == [
            "Step 1/3 : FROM scratch",
            " ---> Running",
            "Successfully built abc",
            "Done",
        ]

    def test_error_entry(self):
        """Should raise with the lines received so far."""
        stream = [
            {"stream": "Step 1/3 : FROM scratch\n"},
            {"error": "ADD failed: no source files\n"},
        ]
        with pytest.raises(BuildInvocationError) as exc_info:
            collect_build_output(stream)

        assert exc_info.value.code == "build_failed"
        assert exc_info.value.messages == ["Step 1/3 : FROM scratch"]
        assert "ADD failed" in str(exc_info.value)


class TestBuildImage:
    """Tests for build_image function."""

    def test_successful_build(self, build_dir):
        """Should submit the packed directory and return log lines."""
        seen = {}

        def fake_build(**kwargs):
            context = kwargs["fileobj"]
            seen["path"] = Path(context.name)
            with tarfile.open(fileobj=context) as tar:
                seen["names"] = tar.getnames()
            return iter([{"stream": "Successfully tagged oe:22.03-lts\n"}])

        client = MagicMock()
        client.api.build.side_effect = fake_build

        messages = build_image(build_dir, "oe:22.03-lts", client=client)

        assert messages == ["Successfully tagged oe:22.03-lts"]
        kwargs = client.api.build.call_args.kwargs
        assert kwargs["custom_context"] is True
        assert kwargs["tag"] == "oe:22.03-lts"
        assert kwargs["nocache"] is True
        assert kwargs["rm"] is True
        assert kwargs["timeout"] == BUILD_TIMEOUT
        assert "Dockerfile" in seen["names"]
        assert seen["path"].name.startswith("docker-")
        assert seen["path"].name.endswith(".image")
        assert not seen["path"].exists()
        client.close.assert_not_called()

    def test_temp_file_removed_on_failure(self, build_dir):
        """Should clean up the context tar when the engine fails."""
        seen = {}

        def failing_build(**kwargs):
            seen["path"] = Path(kwargs["fileobj"].name)
            raise APIError("server error")

        client = MagicMock()
        client.api.build.side_effect = failing_build

        with pytest.raises(BuildInvocationError) as exc_info:
            build_image(build_dir, "oe:latest", client=client)

        assert exc_info.value.code == "engine_error"
        assert not seen["path"].exists()

    def test_read_timeout(self, build_dir):
        """Should report a slow build as a timeout, not a context error."""
        client = MagicMock()
        client.api.build.side_effect = ReadTimeout("read timed out")

        with pytest.raises(BuildInvocationError) as exc_info:
            build_image(build_dir, "oe:latest", client=client)

        assert exc_info.value.code == "timeout"

    def test_connection_error(self, build_dir):
        """Should report a dropped engine connection as an engine error."""
        client = MagicMock()
        client.api.build.side_effect = RequestsConnectionError("connection reset")

        with pytest.raises(BuildInvocationError) as exc_info:
            build_image(build_dir, "oe:latest", client=client)

        assert exc_info.value.code == "engine_error"

    def test_build_error_in_stream(self, build_dir):
        """Should raise build_failed when the stream reports an error."""
        client = MagicMock()
        client.api.build.return_value = iter([{"error": "failed to solve"}])

        with pytest.raises(BuildInvocationError) as exc_info:
            build_image(build_dir, "oe:latest", client=client)

        assert exc_info.value.code == "build_failed"

    def test_missing_dockerfile(self, tmp_path):
        """Should refuse a directory without a Dockerfile."""
        client = MagicMock()

        with pytest.raises(BuildInvocationError) as exc_info:
            build_image(tmp_path, "oe:latest", client=client)

        assert exc_info.value.code == "missing_dockerfile"
        client.api.build.assert_not_called()

    def test_missing_directory(self, tmp_path):
        """Should refuse a directory that does not exist."""
        with pytest.raises(BuildInvocationError) as exc_info:
            build_image(tmp_path / "nope", "oe:latest", client=MagicMock())

        assert exc_info.value.code == "missing_directory"

    def test_owned_client_is_closed(self, build_dir):
        """Should close a client it created itself."""
        client = MagicMock()
        client.api.build.return_value = iter([])

        with patch(
            "openeuler_baseimage.engine.build.docker.from_env", return_value=client
        ) as from_env:
            build_image(build_dir, "oe:latest", timeout=42)

        from_env.assert_called_once_with(timeout=42)
        client.close.assert_called_once()

    def test_engine_unavailable(self, build_dir):
        """Should report an unreachable engine."""
        with patch(
            "openeuler_baseimage.engine.build.docker.from_env",
            side_effect=DockerException("no socket"),
        ):
            with pytest.raises(BuildInvocationError) as exc_info:
                build_image(build_dir, "oe:latest")

        assert exc_info.value.code == "engine_unavailable"

    def test_does_not_change_working_directory(self, build_dir):
        """Should leave the process working directory alone."""
        client = MagicMock()
        client.api.build.return_value = iter([])
        before = Path.cwd()

        build_image(build_dir, "oe:latest", client=client)

        assert Path.cwd() == before


class TestPullImage:
    """Tests for pull_image function."""

    def test_pull_with_credentials(self):
        """Should pass auth_config when credentials are given."""
        client = MagicMock()
        client.images.pull.return_value = MagicMock(tags=["alpine:latest"])

        tags = pull_image("alpine", username="bot", password="pw", client=client)

        assert tags == ["alpine:latest"]
        client.images.pull.assert_called_once_with(
            "alpine", auth_config={"username": "bot", "password": "pw"}
        )

    def test_pull_anonymous(self):
        """Should pull without auth when no credentials are set."""
        client = MagicMock()
        client.images.pull.return_value = MagicMock(tags=["alpine:3.19"])

        pull_image("alpine:3.19", client=client)

        assert client.images.pull.call_args.kwargs["auth_config"] is None

    def test_pull_failure(self):
        """Should raise pull_failed on engine errors."""
        client = MagicMock()
        client.images.pull.side_effect = APIError("denied")

        with pytest.raises(BuildInvocationError) as exc_info:
            pull_image("private/image", client=client)

        assert exc_info.value.code == "pull_failed"


class TestListImages:
    """Tests for list_images function."""

    def test_flattens_tags(self):
        """Should return every tag of every image."""
        client = MagicMock()
        client.images.list.return_value = [
            MagicMock(tags=["oe:22.03-lts", "oe:latest"]),
            MagicMock(tags=[]),
            MagicMock(tags=["alpine:3.19"]),
        ]

        assert list_images(client=client) == ["oe:22.03-lts", "oe:latest", "alpine:3.19"]

    def test_engine_error(self):
        """Should wrap engine errors."""
        client = MagicMock()
        client.images.list.side_effect = DockerException("gone")

        with pytest.raises(BuildInvocationError):
            list_images(client=client)
