"""TUI screens. Each one renders a RenderState snapshot and nothing else."""

from __future__ import annotations

from textual.binding import Binding

from tuiporal.events import Action


def bindings_for(keys: list[tuple[str, str, Action, str]]) -> list[Binding]:
    """Textual bindings that forward a keymap section to the app."""
    return [
        Binding(
            names,
            f"app.core('{action.value}')",
            description,
            show=bool(label),
            key_display=label or None,
        )
        for label, names, action, description in keys
    ]
