"""Tests for the loader registry and the default pipelines."""

from __future__ import annotations

import pytest

from ragpipe.config import reset_settings
from ragpipe.core.loader import Loader
from ragpipe.loaders import (
    DataStoreLoader,
    EmbeddingLoader,
    UrlLoader,
)
from ragpipe.loaders.registry import (
    DEFAULT_SEARCH_CHAIN,
    DEFAULT_WRITE_CHAIN,
    LoaderRegistry,
    default_search_pipeline,
    default_write_pipeline,
    get_registry,
    reset_registry,
)


class TestLoaderRegistry:
    def test_builtin_loaders(self):
        names = get_registry().names()
        for name in ("url", "file", "pdf", "docx", "text", "embedding", "store", "search"):
            assert name in names

    def test_global_registry_is_shared(self):
        assert get_registry() is get_registry()

    def test_create_returns_fresh_instances(self):
        registry = get_registry()
        first = registry.create("url")

        assert isinstance(first, UrlLoader)
        assert registry.create("url") is not first

    def test_defaults_and_options(self):
        search = get_registry().create("search", k=7)

        assert isinstance(search, DataStoreLoader)
        assert search.search is True
        assert search.name == "search"
        assert search.k == 7

    def test_unknown_loader(self):
        with pytest.raises(KeyError):
            get_registry().create("nope")

    def test_factory_must_return_a_loader(self):
        registry = LoaderRegistry()
        registry.register("broken", lambda: object())

        with pytest.raises(TypeError):
            registry.create("broken")

    def test_register_build_and_unregister(self):
        registry = LoaderRegistry()
        registry.register("upper", Loader, name="upper")
        registry.register("lower", lambda **kw: Loader(name="lower", **kw))

        pipeline = registry.build(["upper", "lower"], {"lower": {"timeout": 2.0}})

        assert [loader.name for loader in pipeline.loaders] == ["upper", "lower"]
        assert pipeline.loaders[1].timeout == 2.0
        assert registry.unregister("upper")
        assert not registry.unregister("upper")

    def test_fresh_global_registry_has_every_builtin(self):
        reset_registry()
        try:
            registry = get_registry()
            assert set(registry.names()) >= {"store", "search"}
            assert registry.create("search").name == "search"
        finally:
            reset_registry()

    def test_defaults_may_carry_a_stage_name(self):
        registry = LoaderRegistry()
        registry.register("renamed", Loader, name="custom")

        assert registry.create("renamed").name == "custom"
        assert registry.create("renamed", name="override").name == "override"

    def test_list_loaders(self):
        entries = {entry["name"]: entry for entry in get_registry().list_loaders()}

        assert entries["search"]["factory"] == "DataStoreLoader"
        assert entries["search"]["defaults"]["search"] is True


class TestDefaultPipelines:
    async def test_write_chain(self, fake_model, store):
        pipeline = default_write_pipeline(model=fake_model, store=store)

        assert tuple(loader.name for loader in pipeline.loaders) == DEFAULT_WRITE_CHAIN
        embedding = pipeline.loaders[-2]
        assert isinstance(embedding, EmbeddingLoader)
        assert embedding.model is fake_model
        assert pipeline.loaders[-1].store is store

    async def test_search_chain(self, fake_model, store):
        pipeline = default_search_pipeline(model=fake_model, store=store, k=4)

        assert tuple(loader.name for loader in pipeline.loaders) == DEFAULT_SEARCH_CHAIN
        assert pipeline.loaders[-1].search is True
        assert pipeline.loaders[-1].k == 4

    def test_stage_timeout_from_settings(self, monkeypatch, fake_model):
        monkeypatch.setenv("STAGE_TIMEOUT", "12.5")
        reset_settings()

        pipeline = default_write_pipeline(model=fake_model)
        assert all(loader.timeout == 12.5 for loader in pipeline.loaders)

    def test_no_stage_timeout_by_default(self, fake_model):
        pipeline = default_write_pipeline(model=fake_model)
        assert all(loader.timeout is None for loader in pipeline.loaders)
