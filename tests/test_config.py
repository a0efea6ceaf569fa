"""Tests for the editor configuration layer."""
import pytest

from contentstate import EditorConfig, editor_config_context, get_editor_config, set_base_editor_config
from contentstate.config import get_base_editor_config


def test_defaults():
    """Test the documented default timings."""
    config = EditorConfig()
    assert config.max_snapshots == 50
    assert config.capture_debounce == 0.5
    assert config.settle_delay == 0.5
    assert config.saved_status_display == 3.0
    assert config.error_status_display == 5.0


def test_invalid_values_rejected():
    """Test that nonsensical caps and negative durations raise."""
    with pytest.raises(ValueError):
        EditorConfig(max_snapshots=0)
    with pytest.raises(ValueError):
        EditorConfig(settle_delay=-1)


def test_nested_overrides_layer():
    """Test that nested contexts merge onto the effective config and unwind."""
    with editor_config_context(max_snapshots=10):
        with editor_config_context(capture_debounce=0.1) as inner:
            assert inner.max_snapshots == 10
            assert get_editor_config().capture_debounce == 0.1
        assert get_editor_config().capture_debounce == 0.5
    assert get_editor_config().max_snapshots == 50


def test_base_config_is_process_wide():
    """Test that the base config applies wherever no override is active."""
    set_base_editor_config(EditorConfig(max_snapshots=5))
    assert get_editor_config().max_snapshots == 5
    with editor_config_context(max_snapshots=7):
        assert get_base_editor_config().max_snapshots == 5
        assert get_editor_config().max_snapshots == 7
