"""Parsing of per-file unified diff hunks into added and removed lines."""

from __future__ import annotations

import re

from survival.models.domain import AddedLine, RemovedLine

HUNK_HEADER_PATTERN = re.compile(r"^@@ -(?P<old>\d+)(?:,\d+)? \+(?P<new>\d+)(?:,\d+)? @@")


def split_lines(text: str) -> list[str]:
    """Split on newlines only, the way git and GitHub number lines.

    Form feeds, vertical tabs and Unicode separators stay inside the line. One
    trailing ``\\r`` is dropped per line, and a final newline does not open an
    extra empty line.
    """

    lines = text.split("\n")
    if lines and lines[-1] == "":
        lines.pop()
    return [line[:-1] if line.endswith("\r") else line for line in lines]


def parse_patch(patch: str | None) -> tuple[list[AddedLine], list[RemovedLine]]:
    """Return added lines (numbered in the post-merge file) and removed lines (numbered in the base file).

    ``patch`` is the hunk text GitHub returns per file: no ``diff --git`` or
    ``---``/``+++`` headers, just ``@@`` hunks.
    """

    added: list[AddedLine] = []
    removed: list[RemovedLine] = []
    if not patch:
        return added, removed

    old_line = new_line = 0
    in_hunk = False
    for raw in split_lines(patch):
        header = HUNK_HEADER_PATTERN.match(raw)
        if header:
            old_line = int(header.group("old"))
            new_line = int(header.group("new"))
            in_hunk = True
            continue
        if not in_hunk or raw.startswith("\\"):
            # "\ No newline at end of file" and anything before the first hunk
            continue
        marker, content = raw[:1], raw[1:]
        if marker == "+":
            added.append(AddedLine(content=content, post_merge_line_number=new_line))
            new_line += 1
        elif marker == "-":
            removed.append(RemovedLine(content=content, base_line_number=old_line))
            old_line += 1
        else:
            old_line += 1
            new_line += 1
    return added, removed
