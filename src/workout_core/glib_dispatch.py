import gi

gi.require_version("GLib", "2.0")
from gi.repository import GLib  # noqa: E402


def idle_dispatch(fn, *args) -> None:
    """Deliver a ``WorkoutList`` notification on the GLib main loop."""
    GLib.idle_add(fn, *args)
