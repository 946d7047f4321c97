from __future__ import annotations

from survival.provenance.diff_parser import parse_patch, split_lines


def test_parse_patch_numbers_added_lines_in_post_merge_file():
    patch = "\n".join(
        [
            "@@ -1,3 +1,4 @@",
            " import os",
            "-import sys",
            "+import json",
            "+import logging",
            " ",
            "@@ -10,2 +11,3 @@ def main():",
            "     run()",
            "+    log()",
            "     return 0",
        ]
    )
    added, removed = parse_patch(patch)

    assert [(line.post_merge_line_number, line.content) for line in added] == [
        (2, "import json"),
        (3, "import logging"),
        (12, "    log()"),
    ]
    assert [(line.base_line_number, line.content) for line in removed] == [(2, "import sys")]


def test_parse_patch_ignores_no_newline_marker():
    patch = "@@ -0,0 +1,2 @@\n+first\n+second\n\\ No newline at end of file"
    added, removed = parse_patch(patch)
    assert [line.content for line in added] == ["first", "second"]
    assert [line.post_merge_line_number for line in added] == [1, 2]
    assert removed == []


def test_parse_patch_handles_missing_patch():
    assert parse_patch(None) == ([], [])
    assert parse_patch("") == ([], [])


def test_parse_patch_keeps_blank_added_lines():
    added, _ = parse_patch("@@ -1 +1,3 @@\n a\n+\n+b")
    assert [(line.post_merge_line_number, line.content) for line in added] == [(2, ""), (3, "b")]


def test_form_feeds_and_unicode_separators_stay_inside_a_line():
    added, _ = parse_patch("@@ -0,0 +1,3 @@\n+a\x0cb\n+c\u2028d\r\n+new")

    assert [(line.content, line.post_merge_line_number) for line in added] == [
        ("a\x0cb", 1),
        ("c\u2028d", 2),
        ("new", 3),
    ]


def test_split_lines_only_breaks_on_newlines():
    assert split_lines("old\x0cpage\nnew\n") == ["old\x0cpage", "new"]
    assert split_lines("one\r\ntwo\rthree") == ["one", "two\rthree"]
    assert split_lines("") == []
    assert split_lines("\n") == [""]
