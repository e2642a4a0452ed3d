"""Tests for the window-growing layer stacker."""

import numpy as np
import pytest

from conftest import square
from resinstack.stacking.builder import StackBuilder, StackingWindow
from resinstack.stacking.errors import IntegrityError
from resinstack.stacking.frame_cache import FrameCache, make_binarizer
from resinstack.stacking.options import DynamicLayerHeightConfig
from resinstack.stacking.report import ReportBuilder


def build(store, **kwargs):
    """Run a builder with a config filled from the store."""
    config = DynamicLayerHeightConfig(**kwargs)
    config.init_with_store(store)
    report = ReportBuilder().begin(store)
    layers = StackBuilder(store, config, report=report).build()
    return layers, report.report


def heights(layers):
    return [layer.height for layer in layers]


class TestStackingWindow:
    """Tests for StackingWindow dataclass."""

    def test_tail_defaults_to_start(self):
        """Test a fresh window holds one layer."""
        window = StackingWindow(start=3, accumulated=np.zeros((2, 2), np.uint8), height=0.02)

        assert window.tail == 3
        assert window.size == 1


class RecordingFrameCache(FrameCache):
    """Frame cache that records its size after every fetch."""

    def __init__(self, *args, **kwargs):
        super().__init__(*args, **kwargs)
        self.sizes = []

    def _fetch(self, index):
        entry = super()._fetch(index)
        self.sizes.append(len(self))
        return entry


class TightCacheBuilder(StackBuilder):
    """Builder whose cache only fits two frame pairs."""

    cache = None

    def create_cache(self):
        self.cache = RecordingFrameCache.for_store(
            self.store,
            64 * 64 * 2 * 2,
            transform=make_binarizer(self.config.strip_anti_aliasing),
            keep_last=1,
        )
        return self.cache


class TestStackBuilder:
    """Tests for StackBuilder."""

    @pytest.mark.parametrize("fixture", ["identical_images", "alternating_images", "partial_images"])
    def test_cache_stays_within_budget(self, make_store, request, fixture):
        """Test the cache never holds more pairs than the budget allows."""
        store = make_store(request.getfixturevalue(fixture))
        config = DynamicLayerHeightConfig()
        config.init_with_store(store)
        reference, _ = build(make_store(request.getfixturevalue(fixture)))

        builder = TightCacheBuilder(store, config)
        layers = builder.build()

        assert builder.cache.capacity == 2
        assert max(builder.cache.sizes) <= 2
        assert builder.cache.evictions > 0
        assert heights(layers) == heights(reference)

    def test_identical_layers_collapse(self, make_store, identical_images):
        """Test identical layers stack up to the maximum height."""
        store = make_store(identical_images)
        layers, report = build(store)

        assert heights(layers) == [0.1]
        assert layers[0].position_z == 0.1
        assert report.stacked_layers == 5
        assert report.reused_layers == 0
        assert report.maximum_layer_height == 0.1

    def test_dissimilar_layers_untouched(self, make_store, alternating_images):
        """Test large differences keep every layer at the base height."""
        store = make_store(alternating_images)
        layers, report = build(store)

        assert heights(layers) == [0.02] * 5
        assert [layer.position_z for layer in layers] == [0.02, 0.04, 0.06, 0.08, 0.1]
        assert report.stacked_layers == 0

    def test_mixed_windows(self, make_store, partial_images):
        """Test a small edge stacks while a large change closes the window."""
        store = make_store(partial_images)
        layers, report = build(store)

        assert heights(layers) == [0.04, 0.06]
        assert [layer.position_z for layer in layers] == [0.04, 0.1]
        assert report.stacked_layers == 5

    def test_maximum_height_closes_window(self, make_store):
        """Test windows never grow past the maximum height."""
        store = make_store([square() for _ in range(6)])
        layers, _ = build(store, maximum_layer_height=0.06)

        assert heights(layers) == [0.06, 0.06]

    def test_maximum_not_multiple_of_base(self, make_store, identical_images):
        """Test windows stop below a maximum that isn't a base multiple."""
        store = make_store(identical_images)
        layers, report = build(store, minimum_layer_height=0.02, maximum_layer_height=0.05)

        assert heights(layers) == [0.04, 0.04, 0.02]
        assert all(height <= 0.05 for height in heights(layers))
        assert report.maximum_layer_height == 0.04

    def test_height_conserved(self, make_store, partial_images):
        """Test output heights add up to the model height."""
        store = make_store(partial_images)
        layers, _ = build(store)

        assert round(sum(heights(layers)), 3) == store[-1].position_z
        positions = [layer.position_z for layer in layers]
        assert positions == sorted(positions)
        assert [layer.index for layer in layers] == list(range(len(layers)))

    def test_layer_range(self, make_store, identical_images):
        """Test layers outside the range pass through."""
        store = make_store(identical_images)
        layers, _ = build(store, layer_index_start=1, layer_index_end=3)

        assert heights(layers) == [0.02, 0.06, 0.02]
        assert [layer.position_z for layer in layers] == [0.02, 0.08, 0.1]

    def test_range_end_seeds_pass_through(self, make_store, identical_images):
        """Test a window can't start on the last layer of the range."""
        store = make_store(identical_images)
        layers, _ = build(store, layer_index_start=4)

        assert heights(layers) == [0.02] * 5

    def test_merged_image_is_union(self, make_store):
        """Test the merged layer keeps every lit pixel."""
        store = make_store([square(x1=52), square(x1=53)])
        layers, _ = build(store)

        assert len(layers) == 1
        assert layers[0].image[20, 52] == 255

    def test_store_untouched(self, make_store, identical_images):
        """Test building doesn't modify the store."""
        store = make_store(identical_images)
        before = store.layers
        build(store)

        assert store.layer_count == 5
        assert all(a is b for a, b in zip(before, store.layers))
        assert not any(layer.is_modified for layer in store)

    def test_strip_anti_aliasing(self, make_store):
        """Test stripped output is strictly binary."""
        store = make_store([square(value=200) for _ in range(3)])
        layers, _ = build(store, strip_anti_aliasing=True)

        assert set(np.unique(layers[0].image)) <= {0, 255}

    def test_reconstruct_anti_aliasing(self, make_store):
        """Test reconstruction blurs the stripped edges."""
        store = make_store([square() for _ in range(3)])
        layers, _ = build(store, strip_anti_aliasing=True, reconstruct_anti_aliasing=True)

        values = set(np.unique(layers[0].image))
        assert values - {0, 255}

    def test_reconstruct_needs_strip(self, make_store):
        """Test reconstruction alone leaves images as merged."""
        store = make_store([square() for _ in range(3)])
        layers, _ = build(store, reconstruct_anti_aliasing=True)

        assert set(np.unique(layers[0].image)) == {0, 255}

    def test_integrity_violation(self, make_store, alternating_images):
        """Test a window landing on the wrong height aborts the build."""
        store = make_store(alternating_images)
        store[2].position_z = 0.07

        with pytest.raises(IntegrityError) as exc_info:
            build(store)

        assert exc_info.value.layer_index == 2
        assert exc_info.value.expected_z == 0.07
        assert exc_info.value.actual_z == 0.06

    def test_progress_completes(self, make_store, partial_images):
        """Test progress reaches its total."""
        store = make_store(partial_images)
        config = DynamicLayerHeightConfig()
        config.init_with_store(store)
        builder = StackBuilder(store, config)
        builder.build()

        assert builder.progress.total == 5
        assert builder.progress.percent == 100.0
