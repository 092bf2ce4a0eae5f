"""Tests for the bundled reference datasets."""

import pytest

from knowledge_radar.engine.fallback import FallbackStore
from knowledge_radar.engine.models import CategoryId


@pytest.fixture(scope="module")
def store():
    return FallbackStore()


@pytest.mark.parametrize("category", [c for c in CategoryId if c != CategoryId.MAPS])
def test_every_category_is_bundled(store, category):
    payload = store.get(category)

    assert store.has_fallback(category)
    assert payload


@pytest.mark.parametrize("category", [CategoryId.INDIAN_HISTORY, CategoryId.WORLD_HISTORY])
def test_timelines_are_event_lists(store, category):
    events = store.get(category)

    assert isinstance(events, list)
    assert {"year", "event"} <= set(events[0])


def test_maps_have_no_fallback(store):
    assert not store.has_fallback(CategoryId.MAPS)
    with pytest.raises(KeyError):
        store.get(CategoryId.MAPS)


def test_maps_dataset_is_rejected():
    with pytest.raises(ValueError):
        FallbackStore({CategoryId.MAPS: {}})


def test_returns_independent_copies(store):
    first = store.get(CategoryId.POLITY)
    first.clear()

    assert store.get(CategoryId.POLITY)
