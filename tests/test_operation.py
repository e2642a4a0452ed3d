"""Tests for the dynamic layer height operation."""

import pytest

from resinstack.stacking import (
    DynamicLayerHeightConfig,
    DynamicLayerHeightOperation,
    ExposureItem,
    ExposureSetType,
    IntegrityError,
    OperationCancelled,
    OperationNotSupported,
    OperationProgress,
    OperationValidationError,
    create_operation,
    optimize_layers,
)


class TestDynamicLayerHeightConfig:
    """Tests for DynamicLayerHeightConfig dataclass."""

    def test_default_config(self):
        """Test default configuration."""
        config = DynamicLayerHeightConfig()

        assert config.cache_ram_gb == 1.5
        assert config.minimum_layer_height == 0.03
        assert config.maximum_layer_height == 0.1
        assert config.maximum_erodes == 10
        assert config.exposure_set_type == ExposureSetType.LINEAR
        assert config.layer_index_end is None

    def test_init_with_store(self, make_store, identical_images):
        """Test project defaults are filled in."""
        store = make_store(identical_images)
        config = DynamicLayerHeightConfig(minimum_layer_height=0.01)
        config.init_with_store(store)

        assert config.minimum_layer_height == 0.02
        assert config.bottom_exposure_time == 25.0
        assert config.exposure_time == 2.5

    def test_init_raises_low_maximum(self, make_store, identical_images):
        """Test a maximum below two base layers is doubled."""
        store = make_store(identical_images, layer_height=0.05)
        config = DynamicLayerHeightConfig(maximum_layer_height=0.08)
        config.init_with_store(store)

        assert config.maximum_layer_height == 0.16

    def test_explicit_exposures_kept(self, make_store, identical_images):
        """Test explicit exposures win over project values."""
        store = make_store(identical_images)
        config = DynamicLayerHeightConfig(bottom_exposure_time=30.0, exposure_time=3.0)
        config.init_with_store(store)

        assert config.bottom_exposure_time == 30.0
        assert config.exposure_time == 3.0

    def test_resolve_range(self):
        """Test the range is clamped to the project."""
        config = DynamicLayerHeightConfig(layer_index_start=-2, layer_index_end=99)

        assert config.resolve_range(10) == (0, 9)

    def test_round_trip(self):
        """Test dictionary conversion."""
        config = DynamicLayerHeightConfig(
            maximum_layer_height=0.08,
            exposure_set_type="manual",
            manual_exposure_table=[ExposureItem(0.02, 10.0, 3.0)],
            layer_index_end=40,
        )
        restored = DynamicLayerHeightConfig.from_dict(config.to_dict())

        assert restored == config

    def test_summary(self):
        """Test the one-line summary."""
        summary = DynamicLayerHeightConfig().summary()

        assert "Min: 0.03mm Max: 0.1mm" in summary
        assert "[Layers: 0 - last]" in summary


class TestValidation:
    """Tests for pre-run validation."""

    def test_valid(self, make_store, identical_images):
        """Test a uniform project with defaults is accepted."""
        operation = DynamicLayerHeightOperation(make_store(identical_images))

        assert operation.validate_spawn() is None
        assert operation.validate() == []

    def test_format_not_supported(self, make_store, identical_images):
        """Test formats without per-layer settings are refused."""
        store = make_store(identical_images, can_use_layer_exposure_time=False)
        operation = DynamicLayerHeightOperation(store)

        assert "does not support" in operation.validate_spawn()
        with pytest.raises(OperationNotSupported):
            operation.execute()

    def test_already_maximum_height(self, make_store, identical_images):
        """Test thick base layers can't be stacked."""
        operation = DynamicLayerHeightOperation(make_store(identical_images, layer_height=0.11))

        assert "maximum layer height possible" in operation.validate_spawn()

    def test_modified_positions(self, make_store, partial_images):
        """Test a processed project can't be processed again."""
        store = make_store(partial_images)
        optimize_layers(store)
        operation = DynamicLayerHeightOperation(store)

        assert "starting at layer 1" in operation.validate_spawn()

    def test_minimum_below_base(self, make_store, identical_images):
        """Test the minimum can't go under the file layer height."""
        operation = DynamicLayerHeightOperation(make_store(identical_images))
        operation.config.minimum_layer_height = 0.01

        messages = operation.validate()
        assert any("equal or higher than file layer height" in message for message in messages)

    def test_maximum_not_above_base(self, make_store, identical_images):
        """Test the maximum must exceed the base height."""
        operation = DynamicLayerHeightOperation(make_store(identical_images))
        operation.config.maximum_layer_height = 0.02

        messages = operation.validate()
        assert any("can't be higher than maximum" in message for message in messages)
        assert any("can't be the same or less" in message for message in messages)

    def test_negative_erodes(self, make_store, identical_images):
        """Test a negative erode bound is rejected."""
        operation = create_operation(make_store(identical_images), maximum_erodes=-1)

        assert any("can't be negative" in message for message in operation.validate())

    def test_missing_manual_exposure(self, make_store, identical_images):
        """Test manual tables must cover every reachable height."""
        operation = create_operation(
            make_store(identical_images),
            exposure_set_type=ExposureSetType.MANUAL,
            manual_exposure_table=[ExposureItem(0.02, 25.0, 2.5)],
        )

        messages = operation.validate()
        assert len(messages) == 4
        with pytest.raises(OperationValidationError) as exc_info:
            operation.execute()
        assert exc_info.value.messages == messages

    def test_cache_budget_too_small(self, make_store, identical_images):
        """Test a budget that can't hold one window step is rejected."""
        store = make_store(identical_images, resolution=(30_000, 30_000))
        operation = DynamicLayerHeightOperation(store)

        assert operation.cache_object_count == 0
        messages = operation.validate()
        assert any("at least 2 are required" in message for message in messages)
        with pytest.raises(OperationValidationError):
            operation.execute()

    def test_cache_object_count(self, make_store, identical_images):
        """Test cache capacity from the RAM budget."""
        operation = create_operation(make_store(identical_images), cache_ram_gb=0.01)

        assert operation.cache_object_count == 10_000_000 // (64 * 64 * 2)


class TestExposureSync:
    """Tests for keeping the scheduler in sync with the config."""

    def test_no_change(self, make_store, identical_images):
        """Test a fresh operation is already in sync."""
        operation = DynamicLayerHeightOperation(make_store(identical_images))

        assert operation.sync_exposure_table() is False

    def test_change_detected(self, make_store, identical_images):
        """Test config edits reach the scheduler."""
        operation = DynamicLayerHeightOperation(make_store(identical_images))
        operation.config.exposure_step = 0.5

        assert operation.sync_exposure_table() is True
        assert operation.scheduler.table_dict()[0.04].exposure == 3.0

    def test_copy_to_manual(self, make_store, identical_images):
        """Test copying the automatic table switches the config to manual."""
        operation = DynamicLayerHeightOperation(make_store(identical_images))
        operation.copy_automatic_table_to_manual()

        assert operation.config.is_exposure_set_type_manual
        assert [item.layer_height for item in operation.config.manual_exposure_table] == [
            0.02, 0.04, 0.06, 0.08, 0.1
        ]
        assert operation.validate() == []


class TestExecute:
    """Tests for running the operation."""

    def test_identical_layers(self, make_store, identical_images):
        """Test five identical layers become one with a longer exposure."""
        store = make_store(identical_images)
        report = DynamicLayerHeightOperation(store).execute()

        assert store.layer_count == 1
        assert store[0].height == 0.1
        assert store[0].position_z == 0.1
        assert store[0].exposure_time == 3.3
        assert report.old_layer_count == 5
        assert report.new_layer_count == 1
        assert report.compression_ratio == 500.0
        assert report.old_print_time == 37.5
        assert report.new_print_time == 8.3
        assert report.spared_print_time == 29.2

    def test_maximum_not_multiple_of_base(self, make_store, identical_images):
        """Test every produced height has an exposure entry."""
        store = make_store(identical_images)
        operation = DynamicLayerHeightOperation(store, DynamicLayerHeightConfig(maximum_layer_height=0.05))

        assert operation.validate() == []
        operation.execute()

        assert [layer.height for layer in store] == [0.04, 0.04, 0.02]
        assert [layer.exposure_time for layer in store] == [2.7, 2.7, 2.5]

    def test_bottom_layers(self, make_store, identical_images):
        """Test bottom layers receive the bottom exposure."""
        store = make_store(identical_images, bottom_layer_count=1)
        DynamicLayerHeightOperation(store).execute()

        assert store[0].exposure_time == 25.0
        assert store[0].bottom_exposure_time == 25.0

    def test_nothing_to_stack(self, make_store, alternating_images):
        """Test dissimilar layers come out unchanged."""
        store = make_store(alternating_images)
        report = optimize_layers(store)

        assert store.layer_count == 5
        assert report.reused_layers == 5
        assert report.compression_ratio == 100.0
        assert report.spared_print_time == 0.0

    def test_integrity_leaves_store(self, make_store, alternating_images, monkeypatch):
        """Test a failed run commits nothing."""
        store = make_store(alternating_images)
        store[2].position_z = 0.07
        before = store.layers
        operation = DynamicLayerHeightOperation(store)
        monkeypatch.setattr(operation, "validate_spawn", lambda: None)

        with pytest.raises(IntegrityError):
            operation.execute()

        assert all(a is b for a, b in zip(before, store.layers))
        assert store.layer_count == 5

    def test_cancel_leaves_store(self, make_store, identical_images):
        """Test cancellation aborts without committing."""
        store = make_store(identical_images)
        before = store.layers
        progress = OperationProgress(on_update=lambda p: p.cancel())
        operation = DynamicLayerHeightOperation(store, progress=progress)

        with pytest.raises(OperationCancelled):
            operation.execute()

        assert all(a is b for a, b in zip(before, store.layers))
        assert store.print_time == 37.5

    def test_cancel_before_start(self, make_store, identical_images):
        """Test a pre-cancelled progress stops immediately."""
        progress = OperationProgress()
        progress.cancel()
        operation = DynamicLayerHeightOperation(make_store(identical_images), progress=progress)

        with pytest.raises(OperationCancelled):
            operation.execute()

    def test_exposure_type_manual(self, make_store, identical_images):
        """Test manual exposures are applied as given."""
        table = [ExposureItem(height, 20.0, 4.0) for height in (0.02, 0.04, 0.06, 0.08, 0.1)]
        store = make_store(identical_images)
        optimize_layers(store, exposure_set_type=ExposureSetType.MANUAL, manual_exposure_table=table)

        assert store[0].exposure_time == 4.0
