"""
All-or-nothing execution for engine operations.

Each stateful component lists the attributes that make up its mutable
state in ``STATE_FIELDS``. ``atomic()`` snapshots every participant on
entry and restores all of them if the body raises, so a failed operation
leaves no partial mutation behind.

Lists that are only ever appended to (audit histories) go in
``APPEND_ONLY_FIELDS`` instead: their length is recorded and anything
appended after the snapshot is dropped on restore.
"""

import copy
from contextlib import contextmanager
from typing import Any, Dict, Iterator, Tuple


class Stateful:
    """Mixin providing snapshot/restore over ``STATE_FIELDS`` and ``APPEND_ONLY_FIELDS``."""

    STATE_FIELDS: Tuple[str, ...] = ()
    APPEND_ONLY_FIELDS: Tuple[str, ...] = ()

    def snapshot(self) -> Dict[str, Any]:
        # Component references are never listed in STATE_FIELDS, so the deep
        # copy stays local to this object.
        snap = {name: copy.deepcopy(getattr(self, name)) for name in self.STATE_FIELDS}
        snap.update({name: len(getattr(self, name)) for name in self.APPEND_ONLY_FIELDS})
        return snap

    def restore(self, snap: Dict[str, Any]) -> None:
        for name in self.STATE_FIELDS:
            setattr(self, name, snap[name])
        for name in self.APPEND_ONLY_FIELDS:
            del getattr(self, name)[snap[name]:]


@contextmanager
def atomic(*participants: Stateful) -> Iterator[None]:
    """
    Run the enclosed block atomically with respect to participants.

    Duplicate and None participants are ignored. Exceptions propagate after
    every participant has been restored.
    """
    unique = []
    seen = set()
    for p in participants:
        if p is None or id(p) in seen:
            continue
        seen.add(id(p))
        unique.append(p)

    snapshots = [(p, p.snapshot()) for p in unique]
    try:
        yield
    except BaseException:
        for p, snap in snapshots:
            p.restore(snap)
        raise
