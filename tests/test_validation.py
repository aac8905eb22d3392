"""
Unit tests for docscan.validation, docscan.resources and settings.
"""
import logging

import pytest

from docscan import ObjectUrlRegistry, UploadedFile, ValidationError
from docscan.validation import MAX_FILE_SIZE, ensure_valid, validate_file, validate_files
from settings import Settings, configure_logging, load_settings


class TestValidateFile:
    """Tests for upload checks."""

    def test_accepts_supported_types(self):
        for name, content_type in [
            ("a.png", "image/png"),
            ("b.jpg", "image/jpeg"),
            ("c.pdf", "application/pdf"),
        ]:
            assert validate_file(UploadedFile(name, b"data", content_type)) is None

    def test_guesses_type_from_name(self):
        assert validate_file(UploadedFile("photo.jpeg", b"data")) is None

    def test_rejects_other_types(self):
        message = validate_file(UploadedFile("notes.txt", b"data", "text/plain"))
        assert message == "notes.txt: Only PNG, JPEG, and PDF files are supported"

    def test_rejects_large_files(self):
        big = UploadedFile("big.png", b"0" * (MAX_FILE_SIZE + 1), "image/png")
        assert validate_file(big) == "big.png: File size must be less than 10MB"

    def test_rejects_empty_files(self):
        assert validate_file(UploadedFile("empty.png", b"", "image/png")) == "empty.png: File is empty"

    def test_split_and_raise(self):
        good = UploadedFile("a.png", b"data", "image/png")
        bad = UploadedFile("b.gif", b"data", "image/gif")
        accepted, messages = validate_files([good, bad])
        assert accepted == [good]
        assert len(messages) == 1
        with pytest.raises(ValidationError, match="b.gif"):
            ensure_valid([good, bad])


class TestObjectUrlRegistry:
    """Tests for local object URLs."""

    def test_create_resolve_revoke(self):
        registry = ObjectUrlRegistry()
        url = registry.create(b"abc", "image/png")
        assert url.startswith(ObjectUrlRegistry.PREFIX)
        assert registry.resolve(url) == b"abc"
        assert registry.content_type(url) == "image/png"
        assert registry.revoke(url)
        assert not registry.is_live(url)

    def test_double_revoke_warns(self, caplog):
        registry = ObjectUrlRegistry()
        url = registry.create(b"abc")
        registry.revoke(url)
        with caplog.at_level(logging.WARNING):
            assert not registry.revoke(url)
        assert "unknown object URL" in caplog.text
        with pytest.raises(KeyError):
            registry.resolve(url)


class TestSettings:
    """Tests for configuration loading."""

    def test_defaults(self):
        settings = load_settings(environ={})
        assert settings == Settings()
        assert settings.editor_box == (560, 500)
        assert not settings.has_aws_credentials

    def test_environment(self):
        settings = load_settings(environ={
            "DOCSCAN_LOCAL_BACKEND": "false",
            "DOCSCAN_BACKEND_URL": "https://scan.example.com",
            "DOCSCAN_MAX_FILE_SIZE": "1024",
            "AWS_ACCESS_KEY_ID": "key",
            "AWS_SECRET_ACCESS_KEY": "secret",
        })
        assert not settings.use_local_backend
        assert settings.backend_url == "https://scan.example.com"
        assert settings.max_file_size == 1024
        assert settings.has_aws_credentials

    def test_secrets_take_precedence(self):
        secrets = {
            "aws": {"table_name": "FromSecrets", "region": "eu-west-1"},
            "backend": {"enhance": "no", "log_level": "debug"},
        }
        settings = load_settings(secrets, environ={"DYNAMODB_TABLE": "FromEnv"})
        assert settings.table_name == "FromSecrets"
        assert settings.region_name == "eu-west-1"
        assert not settings.enhance
        assert settings.log_level == "DEBUG"

    def test_configure_logging_is_idempotent(self):
        root = logging.getLogger()
        level, handlers = root.level, list(root.handlers)
        try:
            configure_logging("INFO")
            configure_logging("DEBUG")
            added = [h for h in root.handlers if h not in handlers]
            assert len(added) <= 1
            assert root.level == logging.DEBUG
        finally:
            for handler in root.handlers[:]:
                if handler not in handlers:
                    root.removeHandler(handler)
            root.setLevel(level)
