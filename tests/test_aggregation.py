from __future__ import annotations

from datetime import datetime, timezone

import pytest

from survival.core.errors import AnalysisNotComplete, AnalysisNotFound
from survival.models.domain import AnalysisFile, AnalysisRun, RunStatus
from survival.repositories.redis_store import RedisAnalysisStore
from survival.services.aggregation import AnalysisAggregator

from tests.fakes import fake_redis


def _file(file_id, *, author, sprint, surviving, deleted, current=0) -> AnalysisFile:
    return AnalysisFile(
        file_id=file_id,
        run_id="ar_1",
        pr_id=f"pr-{file_id}",
        author_id=author,
        author_name=author.title(),
        sprint_id=sprint,
        sprint_name=sprint.upper() if sprint else None,
        file_path=f"{file_id}.py",
        status="modified",
        surviving_lines=surviving,
        deleted_lines=deleted,
        current_lines=current,
    )


def _seed(status: RunStatus = RunStatus.DONE) -> RedisAnalysisStore:
    store = RedisAnalysisStore(fake_redis())
    store.create_run(
        AnalysisRun(run_id="ar_1", project_id="proj-1", started_by="user-1", started_at=datetime.now(timezone.utc))
    )
    for file in [
        _file("f1", author="alice", sprint="s1", surviving=8, deleted=2, current=5),
        _file("f2", author="alice", sprint="s2", surviving=0, deleted=4),
        _file("f3", author="bob", sprint="s1", surviving=3, deleted=1),
        _file("f4", author="bob", sprint=None, surviving=0, deleted=0),
    ]:
        store.add_file(file, [])
    if status != RunStatus.IN_PROGRESS:
        store.finalize_run("ar_1", status)
    return store


def test_results_summarise_by_author_and_sprint():
    results = AnalysisAggregator(_seed()).results("ar_1")

    assert len(results.files) == 4
    authors = {summary.author_id: summary for summary in results.author_summaries}
    assert (authors["alice"].surviving_lines, authors["alice"].deleted_lines, authors["alice"].file_count) == (8, 6, 2)
    assert authors["alice"].survival_rate == pytest.approx(800 / 14)
    assert authors["bob"].survival_rate == 75.0
    assert [summary.author_id for summary in results.author_summaries] == ["alice", "bob"]

    assert [summary.sprint_id for summary in results.sprint_summaries] == ["s1", "s2", None]
    s1 = results.sprint_summaries[0]
    assert (s1.surviving_lines, s1.deleted_lines, s1.file_count) == (11, 3, 2)
    assert results.sprint_summaries[2].survival_rate == 100.0

    totals = results.totals
    assert (totals.surviving_lines, totals.deleted_lines, totals.current_lines, totals.file_count) == (11, 7, 5, 4)
    assert totals.survival_rate == pytest.approx(1100 / 18)


def test_sprint_filter_applies_to_files_and_author_summaries():
    results = AnalysisAggregator(_seed()).results("ar_1", sprint_id="s1")

    assert {file.file_id for file in results.files} == {"f1", "f3"}
    authors = {summary.author_id: summary for summary in results.author_summaries}
    assert authors["alice"].deleted_lines == 2
    assert authors["alice"].survival_rate == 80.0
    assert len(results.sprint_summaries) == 3
    assert results.totals.file_count == 4


def test_author_filter_restricts_files_only():
    results = AnalysisAggregator(_seed()).results("ar_1", author_id="bob")

    assert {file.file_id for file in results.files} == {"f3", "f4"}
    assert {summary.author_id for summary in results.author_summaries} == {"alice", "bob"}


def test_results_require_finished_run():
    with pytest.raises(AnalysisNotComplete):
        AnalysisAggregator(_seed(RunStatus.IN_PROGRESS)).results("ar_1")
    with pytest.raises(AnalysisNotComplete):
        AnalysisAggregator(_seed(RunStatus.FAILED)).results("ar_1")
    with pytest.raises(AnalysisNotFound):
        AnalysisAggregator(_seed()).results("ar_missing")


def test_survival_rate_defaults_to_full_when_nothing_was_counted():
    assert AnalysisAggregator.totals([]).survival_rate == 100.0
    assert AnalysisAggregator.author_summaries([]) == []
