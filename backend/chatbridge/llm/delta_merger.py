"""
Streaming delta merger.

WHAT: Reconstruct text from fragments that may be true deltas or cumulative snapshots
WHY: Gemini/Vertex resend the text so far; others send append-only deltas
HOW: Pure function over (snapshot, fragment) returning the new snapshot and the delta to emit
"""

import os
from dataclasses import dataclass


@dataclass(frozen=True)
class MergeResult:
    """New merger snapshot plus the delta to emit (None when nothing is new)."""
    snapshot: str
    delta: str | None


def merge_delta(snapshot: str, fragment: str) -> MergeResult:
    """
    Merge one fragment into the running snapshot.

    Rules, in order:
      1. empty snapshot: the fragment becomes the snapshot and is emitted whole
      2. fragment equals the snapshot: duplicate, nothing emitted
      3. fragment extends the snapshot: emit the extension
      4. fragment shares a non-empty prefix with the snapshot: emit what
         follows the common prefix and adopt the fragment as the snapshot
         (heuristic recovery for snapshot regressions, not an exact diff)
      5. no overlap: the fragment is a true delta, append it

    Args:
        snapshot: Text the merger has seen so far
        fragment: Newly received fragment

    Returns:
        MergeResult with the updated snapshot and the delta to emit
    """
    if not fragment:
        return MergeResult(snapshot, None)

    if not snapshot:
        return MergeResult(fragment, fragment)

    if fragment == snapshot:
        return MergeResult(snapshot, None)

    if fragment.startswith(snapshot):
        delta = fragment[len(snapshot):]
        return MergeResult(fragment, delta or None)

    common = os.path.commonprefix([fragment, snapshot])
    if common:
        delta = fragment[len(common):]
        return MergeResult(fragment, delta or None)

    return MergeResult(snapshot + fragment, fragment)
