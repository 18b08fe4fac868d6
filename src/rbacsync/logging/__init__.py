from .context import (
    ReloadIdFilter,
    clear_current_reload_id,
    gen_reload_id,
    get_current_reload_id,
    set_current_reload_id,
)

__all__ = [
    "ReloadIdFilter",
    "clear_current_reload_id",
    "gen_reload_id",
    "get_current_reload_id",
    "set_current_reload_id",
]
