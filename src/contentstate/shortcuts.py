"""Keyboard shortcut dispatch for the editor (undo / redo / save)."""
import asyncio
import logging
from enum import Enum
from typing import Optional, Union

from contentstate.models import SaveStatus
from contentstate.session import EditorSession

logger = logging.getLogger(__name__)


class Shortcut(str, Enum):
    UNDO = 'undo'
    REDO = 'redo'
    SAVE = 'save'


# Platform key combos → shortcut ('mod' is Ctrl, or Cmd on macOS)
KEY_BINDINGS = {
    'mod+z': Shortcut.UNDO,
    'mod+shift+z': Shortcut.REDO,
    'mod+y': Shortcut.REDO,
    'mod+s': Shortcut.SAVE,
}


def parse_key_combo(combo: str) -> Optional[Shortcut]:
    """Normalize 'Ctrl+Shift+Z' / 'cmd+s' style combos and look them up."""
    parts = [p.strip().lower() for p in combo.split('+') if p.strip()]
    parts = ['mod' if p in ('ctrl', 'control', 'cmd', 'meta', 'command') else p for p in parts]
    modifiers = sorted(p for p in parts[:-1])
    key = '+'.join(modifiers + parts[-1:]) if parts else ''
    return KEY_BINDINGS.get(key)


def dispatch_shortcut(session: EditorSession, shortcut: Union[Shortcut, str]) -> Union[bool, 'asyncio.Task', None]:
    """Run a shortcut against the session.

    Undo/redo are ignored while a save is in flight so they cannot race the
    post-save stabilization. Save is ignored while saving. Inside a running
    loop, save is scheduled and its task returned.
    """
    shortcut = Shortcut(shortcut)
    saving = session.save_status is SaveStatus.SAVING

    if shortcut in (Shortcut.UNDO, Shortcut.REDO):
        if saving:
            logger.debug(f"SHORTCUT: {shortcut.value} ignored while saving")
            return False
        return session.undo() if shortcut is Shortcut.UNDO else session.redo()

    if saving:
        logger.debug("SHORTCUT: save ignored, save already in flight")
        return None
    try:
        loop = asyncio.get_running_loop()
    except RuntimeError:
        return asyncio.run(_save_to_completion(session)).ok
    return loop.create_task(session.save())


async def _save_to_completion(session: EditorSession):
    # Version writes are tasks on this loop; finish them before it closes
    result = await session.save()
    await session.versions.wait_pending()
    return result
