"""Keyboard chord interpretation.

Maps raw keys to discrete session input events, mode by mode. Normal mode uses
vim-ish bindings (`j`/`k`, `gg`, `G`); text-entry modes pass characters
through to the input buffer.
"""

from typing import List, Optional

from messaging.events import (
    Backspace,
    Cancel,
    Confirm,
    EditInput,
    ForceSync,
    InputEvent,
    Navigate,
    NavigateTo,
    Quit,
    StartAddingRecipient,
    StartComposing,
)
from messaging.models import Mode

_NORMAL_KEYS = {
    "q": Quit(),
    "j": Navigate(NavigateTo.NEXT),
    "down": Navigate(NavigateTo.NEXT),
    "k": Navigate(NavigateTo.PREVIOUS),
    "up": Navigate(NavigateTo.PREVIOUS),
    "G": Navigate(NavigateTo.LAST),
    "i": StartComposing(),
    "a": StartAddingRecipient(),
    "r": ForceSync(),
}

_TEXT_ENTRY_KEYS = {
    "escape": Cancel(),
    "enter": Confirm(),
    "backspace": Backspace(),
}


class KeyInterpreter:
    """Stateful key-to-event mapper; remembers a pending `g` for `gg`."""

    def __init__(self):
        self.pending_g = False

    def interpret(
        self, mode: Mode, key: str, character: Optional[str] = None
    ) -> List[InputEvent]:
        """
        Translate one key press.

        Args:
            mode: Current session mode
            key: Key name (e.g. "j", "enter", "ctrl+c")
            character: Printable character for the key, if any

        Returns:
            Zero or more input events.
        """
        if key == "ctrl+c":
            self.pending_g = False
            return [Quit()]
        if mode is Mode.NORMAL:
            return self._normal(key, character)
        return self._text_entry(key, character)

    def _normal(self, key: str, character: Optional[str]) -> List[InputEvent]:
        name = character if character and character.isprintable() else key
        if name == "g":
            if self.pending_g:
                self.pending_g = False
                return [Navigate(NavigateTo.FIRST)]
            self.pending_g = True
            return []

        self.pending_g = False
        event = _NORMAL_KEYS.get(name)
        return [event] if event is not None else []

    def _text_entry(self, key: str, character: Optional[str]) -> List[InputEvent]:
        self.pending_g = False
        event = _TEXT_ENTRY_KEYS.get(key)
        if event is not None:
            return [event]
        if key.startswith(("ctrl+", "alt+")):
            return []
        if character and character.isprintable():
            return [EditInput(character)]
        return []
