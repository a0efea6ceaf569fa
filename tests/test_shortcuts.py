"""Tests for keyboard shortcut parsing and dispatch."""
import asyncio

import pytest

from conftest import TEST_CONFIG
from contentstate import SaveStatus, Shortcut, dispatch_shortcut
from contentstate.shortcuts import parse_key_combo


@pytest.mark.parametrize('combo, expected', [
    ('Ctrl+Z', Shortcut.UNDO),
    ('cmd+z', Shortcut.UNDO),
    ('Ctrl+Shift+Z', Shortcut.REDO),
    ('shift+meta+z', Shortcut.REDO),
    ('ctrl+y', Shortcut.REDO),
    ('Cmd+S', Shortcut.SAVE),
    ('ctrl+x', None),
    ('', None),
])
def test_parse_key_combo(combo, expected):
    """Test that platform modifiers normalize onto the binding table."""
    assert parse_key_combo(combo) is expected


def test_undo_and_redo(loaded_session, scheduler):
    """Test that undo/redo shortcuts drive the session history."""
    loaded_session.form.input_value('title', 'Edited')
    scheduler.advance(TEST_CONFIG.capture_debounce)

    assert dispatch_shortcut(loaded_session, Shortcut.UNDO) is True
    assert loaded_session.form.get_value('title') == 'Linen Shirt'
    assert dispatch_shortcut(loaded_session, 'redo') is True
    assert loaded_session.form.get_value('title') == 'Edited'


def test_save_outside_loop(loaded_session, backend):
    """Test that the save shortcut runs the save to completion without a loop."""
    loaded_session.form.input_value('title', 'Edited')
    assert dispatch_shortcut(loaded_session, Shortcut.SAVE) is True
    assert backend.saved_payloads[0]['title'] == 'Edited'
    versions = asyncio.run(loaded_session.list_versions())
    assert [v.form_snapshot['title'] for v in versions] == ['Edited']


def test_shortcuts_ignored_while_saving(loaded_session, backend, scheduler):
    """Test that undo, redo and save are ignored while a save is in flight."""
    loaded_session.form.input_value('title', 'Edited')
    scheduler.advance(TEST_CONFIG.capture_debounce)

    async def scenario():
        backend.save_gate = asyncio.Event()
        task = dispatch_shortcut(loaded_session, Shortcut.SAVE)
        await asyncio.sleep(0)
        assert loaded_session.save_status is SaveStatus.SAVING

        outcomes = (
            dispatch_shortcut(loaded_session, Shortcut.UNDO),
            dispatch_shortcut(loaded_session, Shortcut.REDO),
            dispatch_shortcut(loaded_session, Shortcut.SAVE),
        )
        backend.save_gate.set()
        result = await task
        await loaded_session.versions.wait_pending()
        return outcomes, result

    outcomes, result = asyncio.run(scenario())
    assert outcomes == (False, False, None)
    assert result.ok
    assert loaded_session.form.get_value('title') == 'Edited'
    assert len(backend.saved_payloads) == 1
