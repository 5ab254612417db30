"""Top-N selection over a confidence vector.

Only the N best entries are needed, so selection runs on a bounded heap
(``heapq.nsmallest``) in O(M log N) instead of sorting all M scores. Ties on
score resolve to the lower original index, which is what a stable partial
sort keyed purely on score produces.
"""

from __future__ import annotations

import heapq
from typing import TYPE_CHECKING

from multilabel.errors import InvalidArgumentError

if TYPE_CHECKING:
    from collections.abc import Sequence

    import numpy as np
    from numpy.typing import NDArray


def top_n(scores: Sequence[float] | NDArray[np.floating], n: int) -> list[int]:
    """Return the indices of the ``n`` highest scores, best first.

    ``n`` is clamped to ``len(scores)``.

    Raises:
        InvalidArgumentError: If ``scores`` is empty or ``n <= 0``.
    """
    m = len(scores)
    if m == 0:
        raise InvalidArgumentError("Cannot select from an empty confidence vector")
    if n <= 0:
        raise InvalidArgumentError(f"Requested count must be positive, got {n}")

    k = min(n, m)
    return heapq.nsmallest(k, range(m), key=lambda i: (-float(scores[i]), i))
