"""Branch safety verdicts.

A verdict answers one question about a workspace branch in one clone: if the
clone is deleted, is the branch's work recoverable from upstream?
"""

from __future__ import annotations

from enum import StrEnum

__all__ = ["BranchSafety"]


class BranchSafety(StrEnum):
    """Outcome of classifying an Active member's workspace branch.

    Ordered from safest to least safe. Only MERGED and SQUASH_MERGED allow a
    removal without `force`.
    """

    MERGED = "merged"
    SQUASH_MERGED = "squash_merged"
    PUSHED_TO_REMOTE = "pushed_to_remote"
    UNMERGED = "unmerged"

    @property
    def is_safe(self) -> bool:
        return self in (BranchSafety.MERGED, BranchSafety.SQUASH_MERGED)

    def describe(self) -> str:
        match self:
            case BranchSafety.MERGED:
                return "merged"
            case BranchSafety.SQUASH_MERGED:
                return "squash-merged"
            case BranchSafety.PUSHED_TO_REMOTE:
                return "unmerged, but pushed to remote"
            case BranchSafety.UNMERGED:
                return "unmerged, never pushed"
