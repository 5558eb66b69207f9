"""Tests for top-level package exports."""

from __future__ import annotations

import importlib

import pytest

import unichat


class TestTopLevelExports:
    """Verify every name in ``__all__`` is importable from the top-level package."""

    @pytest.mark.parametrize("name", unichat.__all__)
    def test_all_names_resolve(self, name: str) -> None:
        assert getattr(unichat, name) is not None

    def test_all_is_unique(self) -> None:
        assert len(unichat.__all__) == len(set(unichat.__all__))

    def test_version(self) -> None:
        assert isinstance(unichat.__version__, str)
        assert unichat.__version__

    def test_core_pipeline_names(self) -> None:
        from unichat import ChatPipeline, PipelineError, ServiceContext, Settings

        assert ChatPipeline is not None
        assert PipelineError is not None
        assert ServiceContext is not None
        assert Settings is not None


class TestSubpackageExports:
    @pytest.mark.parametrize(
        "module",
        [
            "unichat.clients",
            "unichat.enrichers",
            "unichat.handlers",
            "unichat.models",
            "unichat.pipeline",
            "unichat.processors",
            "unichat.protocols",
            "unichat.server",
            "unichat.tokens",
        ],
    )
    def test_subpackage_all(self, module: str) -> None:
        mod = importlib.import_module(module)
        for name in mod.__all__:
            assert hasattr(mod, name), f"{module} is missing {name}"
