"""Shared fixtures: every test gets its own store file and dist directory."""

import pytest

import config
import kv


@pytest.fixture
def store(tmp_path, monkeypatch):
    """Point the app at a throwaway store and output directory."""
    monkeypatch.setattr(config, "KV_PATH", tmp_path / "data" / "kv.json")
    monkeypatch.setattr(config, "SITE_DIST_DIR", tmp_path / "dist")
    monkeypatch.setattr(config, "ADMIN_USERNAME", "admin")
    monkeypatch.setattr(config, "ADMIN_PASSWORD", "s3cret-pass")
    monkeypatch.setattr(config, "SITE_BASE_PATH", "")
    return kv.get_kv()


@pytest.fixture
def dist_dir(store):
    return config.SITE_DIST_DIR


def _article_data(**overrides):
    data = {
        "title": "Growing magnolias",
        "slug": "growing-magnolias",
        "body": "Magnolias like **acidic** soil.",
        "category": "Garden",
        "tags": ["trees", "spring"],
        "pub_date": "2024-03-01T09:00:00+00:00",
    }
    data.update(overrides)
    return data


@pytest.fixture
def article_data():
    """Factory for valid article input; keyword overrides replace fields."""
    return _article_data
