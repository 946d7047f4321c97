"""Line-level provenance resolution for one file of one pull request."""

from __future__ import annotations

from bisect import bisect_left, bisect_right
from collections import defaultdict
from dataclasses import dataclass
from typing import Collection, Mapping, Optional, Sequence

from survival.core.config import settings
from survival.models.domain import BlameEntry, CurrentLine, LineStatus, PatchFile, ResolvedLine


@dataclass(frozen=True)
class MatchPolicy:
    """How PR-added lines are matched against current file lines.

    ``tie_break`` picks among identical contributed lines: ``nearest`` takes the
    one closest to the expected original position, ``first`` the lowest line.
    ``require_blame_commit`` demands the blamed commit belongs to the PR; when
    off, content equality alone marks a line as surviving.
    """

    tie_break: str = "nearest"
    require_blame_commit: bool = True

    @classmethod
    def from_settings(cls) -> "MatchPolicy":
        return cls(tie_break=settings.match_tie_break, require_blame_commit=settings.match_require_blame_commit)


class LineProvenanceResolver:
    """Classifies current and contributed lines as SURVIVING, CURRENT or DELETED."""

    def __init__(self, policy: MatchPolicy | None = None) -> None:
        self._policy = policy or MatchPolicy.from_settings()

    def resolve(
        self,
        patch_file: PatchFile,
        current_lines: Optional[Sequence[CurrentLine]],
        blame_by_line: Mapping[int, BlameEntry],
        pr_commit_shas: Collection[str],
        *,
        deleted_attribution: BlameEntry | None = None,
        pr_file_url: str | None = None,
    ) -> list[ResolvedLine]:
        """Return the file's lines in display order with a dense 0-based display_order.

        ``current_lines`` is ``None`` or empty when the file no longer exists, in
        which case every contributed line is DELETED.
        """

        pool = self._contributed_pool(patch_file)
        shas = set(pr_commit_shas)
        current = list(current_lines or [])

        classified: list[ResolvedLine] = []
        anchors: list[tuple[int, int]] = []
        drift = 0
        for idx, line in enumerate(current):
            blame = blame_by_line.get(line.line_number)
            from_pr = blame is not None and blame.commit_sha in shas
            candidates = pool.get(line.content)
            if candidates and (from_pr or not self._policy.require_blame_commit):
                original = self._take(candidates, line.line_number + drift)
                drift = original - line.line_number
                anchors.append((original, idx))
                classified.append(self._line(line, LineStatus.SURVIVING, blame, original, pr_file_url))
            else:
                classified.append(self._line(line, LineStatus.CURRENT, blame, None, pr_file_url))

        leftovers = sorted(
            (original, content) for content, originals in pool.items() for original in originals
        )
        deleted = [
            self._deleted_line(content, original, deleted_attribution, pr_file_url) for original, content in leftovers
        ]
        slots = self._deleted_slots([original for original, _ in leftovers], anchors, len(current))

        ordered: list[ResolvedLine] = []
        pending = sorted(zip(slots, range(len(deleted))))
        cursor = 0
        for idx, line in enumerate(classified):
            while cursor < len(pending) and pending[cursor][0] <= idx:
                ordered.append(deleted[pending[cursor][1]])
                cursor += 1
            ordered.append(line)
        ordered.extend(deleted[position] for _, position in pending[cursor:])

        for order, line in enumerate(ordered):
            line.display_order = order
        return ordered

    @staticmethod
    def _contributed_pool(patch_file: PatchFile) -> dict[str, list[int]]:
        pool: dict[str, list[int]] = defaultdict(list)
        for added in {(line.content, line.post_merge_line_number) for line in patch_file.added_lines}:
            pool[added[0]].append(added[1])
        for originals in pool.values():
            originals.sort()
        return pool

    def _take(self, candidates: list[int], expected: int) -> int:
        if self._policy.tie_break == "first" or len(candidates) == 1:
            return candidates.pop(0)
        best = min(range(len(candidates)), key=lambda pos: (abs(candidates[pos] - expected), candidates[pos]))
        return candidates.pop(best)

    @staticmethod
    def _deleted_slots(deleted_origs: list[int], anchors: list[tuple[int, int]], current_count: int) -> list[int]:
        """Index of the current line each deleted line is displayed in front of.

        A deleted line follows the nearest surviving line that preceded it in the
        merge commit, skipping the context lines that sat between them. Without
        such a predecessor it is placed relative to the next surviving line, and
        without any surviving line relative to the top of the file.

        The context gap is measured in HEAD positions after the anchor and is
        capped at the next anchor. Lines inserted after the merge between the
        anchor and that context shift the deleted line into the inserted block;
        merge-time context is not tracked, so positions are the only reference.
        """

        by_orig = sorted(anchors)
        anchor_origs = [orig for orig, _ in by_orig]
        anchor_idxs = sorted(idx for _, idx in anchors)

        def deleted_between(low: int, high: int) -> int:
            return max(bisect_left(deleted_origs, high) - bisect_right(deleted_origs, low), 0)

        slots: list[int] = []
        for orig in deleted_origs:
            pos = bisect_left(anchor_origs, orig)
            if pos > 0:
                prev_orig, prev_idx = by_orig[pos - 1]
                context = max(orig - prev_orig - 1 - deleted_between(prev_orig, orig), 0)
                following = bisect_right(anchor_idxs, prev_idx)
                limit = anchor_idxs[following] if following < len(anchor_idxs) else current_count
                slots.append(min(prev_idx + 1 + context, limit))
            elif pos < len(by_orig):
                next_orig, next_idx = by_orig[pos]
                context = max(next_orig - orig - 1 - deleted_between(orig, next_orig), 0)
                slots.append(max(next_idx - context, 0))
            else:
                context = max(orig - 1 - bisect_left(deleted_origs, orig), 0)
                slots.append(min(context, current_count))
        return slots

    @staticmethod
    def _line(
        line: CurrentLine,
        status: LineStatus,
        blame: BlameEntry | None,
        original: int | None,
        pr_file_url: str | None,
    ) -> ResolvedLine:
        return ResolvedLine(
            line_number=line.line_number,
            original_line_number=original,
            content=line.content,
            status=status,
            commit_sha=blame.commit_sha if blame else None,
            commit_url=blame.commit_url if blame else None,
            author_full_name=blame.author_name if blame else None,
            author_username=blame.author_username if blame else None,
            pr_file_url=pr_file_url,
            origin_pr_number=blame.origin_pr_number if blame and status == LineStatus.CURRENT else None,
            origin_pr_url=blame.origin_pr_url if blame and status == LineStatus.CURRENT else None,
        )

    @staticmethod
    def _deleted_line(
        content: str,
        original: int,
        attribution: BlameEntry | None,
        pr_file_url: str | None,
    ) -> ResolvedLine:
        return ResolvedLine(
            line_number=None,
            original_line_number=original,
            content=content,
            status=LineStatus.DELETED,
            commit_sha=attribution.commit_sha if attribution else None,
            commit_url=attribution.commit_url if attribution else None,
            author_full_name=attribution.author_name if attribution else None,
            author_username=attribution.author_username if attribution else None,
            pr_file_url=pr_file_url,
        )
