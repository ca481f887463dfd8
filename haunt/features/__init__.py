"""Feature modules.

Stateless helpers are standalone functions; stateful features are helper
classes that own their own state and communicate through injected callbacks.

Modules
-------
git_integration
    ``run_git`` and :class:`RepositoryLocator`: repository/branch scoped
    storage paths with a short-lived lookup cache.
picker_items
    :func:`build_picker_items`: display rows for bookmark pickers.
"""

from .git_integration import GitInfo, RepositoryLocator, run_git
from .picker_items import PickerItem, build_picker_items

__all__ = [
    "GitInfo",
    "PickerItem",
    "RepositoryLocator",
    "build_picker_items",
    "run_git",
]
