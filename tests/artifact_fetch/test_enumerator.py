"""Tests for workflow-run enumeration and the resumable checkpoint."""

from __future__ import annotations

import pytest

from ArtifactFetch.enumerator import Checkpoint, fetch_single_run, iter_workflow_runs
from ArtifactFetch.errors import OperationCancelled, RemoteError
from ArtifactFetch.models import RepoRef

REPO = RepoRef(owner="octo", name="widgets")


def test_lower_bound_stops_enumeration(fake_api, actions_client) -> None:
    """Runs [105, 102, 99] with lower bound 100 yield 105 and 102; checkpoint ends at 105."""

    for run_id in (105, 102, 99):
        fake_api.add_run(run_id)
    checkpoint = Checkpoint(100)

    runs = list(iter_workflow_runs(actions_client, REPO, since=100, checkpoint=checkpoint))

    assert [run.id for run in runs] == [105, 102]
    assert checkpoint.value == 105


def test_checkpoint_advanced_before_run_is_yielded(fake_api, actions_client) -> None:
    fake_api.add_run(42)
    checkpoint = Checkpoint()

    generator = iter_workflow_runs(actions_client, REPO, since=0, checkpoint=checkpoint)
    first = next(generator)

    assert first.id == 42
    assert checkpoint.value == 42


def test_pagination_consumes_total_count(fake_api, actions_client) -> None:
    for run_id in range(1, 8):
        fake_api.add_run(run_id)
    checkpoint = Checkpoint()

    runs = list(
        iter_workflow_runs(actions_client, REPO, since=0, checkpoint=checkpoint, per_page=3)
    )

    assert [run.id for run in runs] == [7, 6, 5, 4, 3, 2, 1]
    pages = [record.params["page"] for record in fake_api.requests_for("/actions/runs")]
    assert pages == ["1", "2", "3"]
    assert checkpoint.value == 7


def test_no_further_pages_after_lower_bound(fake_api, actions_client) -> None:
    for run_id in range(1, 11):
        fake_api.add_run(run_id)

    runs = list(
        iter_workflow_runs(actions_client, REPO, since=8, checkpoint=Checkpoint(8), per_page=2)
    )

    assert [run.id for run in runs] == [10, 9]
    assert len(fake_api.requests_for("/actions/runs")) == 2


def test_empty_page_ends_enumeration(fake_api, actions_client) -> None:
    fake_api.add_run(3)
    fake_api.total_count_override = 50

    runs = list(iter_workflow_runs(actions_client, REPO, since=0, checkpoint=Checkpoint()))

    assert [run.id for run in runs] == [3]
    assert len(fake_api.requests_for("/actions/runs")) == 2


def test_empty_listing_leaves_checkpoint(fake_api, actions_client) -> None:
    checkpoint = Checkpoint(77)
    assert list(iter_workflow_runs(actions_client, REPO, since=77, checkpoint=checkpoint)) == []
    assert checkpoint.value == 77


def test_filters_forwarded(fake_api, actions_client) -> None:
    fake_api.add_run(5, branch="main", event="push")
    fake_api.add_run(4, branch="main", event="pull_request")

    runs = list(
        iter_workflow_runs(
            actions_client, REPO, since=0, checkpoint=Checkpoint(), branch="main", event="push"
        )
    )

    assert [run.id for run in runs] == [5]


def test_cancellation_between_pages_keeps_checkpoint(
    fake_api, actions_client, cancel_token
) -> None:
    for run_id in range(1, 7):
        fake_api.add_run(run_id)
    checkpoint = Checkpoint()
    generator = iter_workflow_runs(
        actions_client, REPO, since=0, checkpoint=checkpoint, per_page=2, cancel_token=cancel_token
    )

    assert [next(generator).id, next(generator).id] == [6, 5]
    cancel_token.cancel("test")

    with pytest.raises(OperationCancelled):
        next(generator)
    assert checkpoint.value == 6
    assert len(fake_api.requests_for("/actions/runs")) == 1


def test_listing_error_propagates(fake_api, actions_client) -> None:
    fake_api.fail("/repos/octo/widgets/actions/runs", 403, "API rate limit exceeded")

    with pytest.raises(RemoteError, match="rate limit"):
        list(iter_workflow_runs(actions_client, REPO, since=0, checkpoint=Checkpoint()))


def test_fetch_single_run_advances_checkpoint(fake_api, actions_client) -> None:
    fake_api.add_run(314, message="fix build")
    checkpoint = Checkpoint()

    run = fetch_single_run(actions_client, REPO, 314, checkpoint=checkpoint)

    assert run.id == 314
    assert run.commit_message == "fix build"
    assert checkpoint.value == 314
    assert fake_api.requests[-1].path == "/repos/octo/widgets/actions/runs/314"
