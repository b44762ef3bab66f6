"""Tests for the flat top-level ``aviary`` API."""

import pytest

import aviary


class TestLazyImports:
    @pytest.mark.parametrize("name", aviary.__all__)
    def test_every_export_resolves(self, name: str) -> None:
        assert getattr(aviary, name) is not None

    def test_identity(self) -> None:
        from aviary.app import App
        from aviary.bundle import Bundle

        assert aviary.App is App
        assert aviary.Bundle is Bundle

    def test_unknown_name(self) -> None:
        with pytest.raises(AttributeError):
            aviary.DoesNotExist  # noqa: B018

    def test_version(self) -> None:
        assert aviary.__version__ == "0.1.0"
