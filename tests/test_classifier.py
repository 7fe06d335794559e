from __future__ import annotations

import pytest

from fakes import FakeBackend
from gitwatch_sync.classifier import RemoteStateClassifier, Scenario
from gitwatch_sync.config import SyncContext
from gitwatch_sync.errors import RemoteUnreachable
from gitwatch_sync.models import Ancestry

HISTORY = {"a": (), "b": ("a",), "side": ("a",), "orphan": ()}


def classify(**kwargs):
    backend = FakeBackend(HISTORY, **kwargs)
    classifier = RemoteStateClassifier(SyncContext(), backend)
    state = classifier.refresh()
    return state, classifier.scenario(state), backend


def test_missing_remote_branch_is_first_publish():
    state, scenario, backend = classify(local="a")

    assert scenario is Scenario.FIRST_PUBLISH
    assert state.has_remote_tracking_ref is False
    assert backend.calls == ["remote_branch_exists", "forget_tracking_ref"]


def test_stale_tracking_ref_is_dropped_when_branch_vanished():
    state, scenario, _ = classify(local="a", remote="a", remote_exists=False)

    assert scenario is Scenario.FIRST_PUBLISH
    assert state.remote_head is None


def test_no_local_history_needs_alignment():
    state, scenario, backend = classify(remote="b")

    assert scenario is Scenario.UNBORN_LOCAL
    assert state.local_ancestor_of_remote is Ancestry.UNKNOWN
    assert "fetch" in backend.calls


@pytest.mark.parametrize(
    ("local", "remote", "expected", "local_in_remote", "remote_in_local"),
    [
        ("b", "b", Scenario.EVALUATE, Ancestry.TRUE, Ancestry.TRUE),
        ("a", "b", Scenario.EVALUATE, Ancestry.TRUE, Ancestry.FALSE),
        ("b", "a", Scenario.EVALUATE, Ancestry.FALSE, Ancestry.TRUE),
        ("side", "b", Scenario.DIVERGED, Ancestry.FALSE, Ancestry.FALSE),
        ("orphan", "b", Scenario.DIVERGED, Ancestry.UNKNOWN, Ancestry.UNKNOWN),
    ],
)
def test_ancestry_between_heads(local, remote, expected, local_in_remote, remote_in_local):
    state, scenario, _ = classify(local=local, remote=remote)

    assert scenario is expected
    assert state.local_ancestor_of_remote is local_in_remote
    assert state.remote_ancestor_of_local is remote_in_local


def test_dirty_flag_is_reported():
    state, _, _ = classify(local="a", remote="a", dirty=True)

    assert state.working_tree_dirty is True


def test_transport_errors_are_fatal():
    with pytest.raises(RemoteUnreachable) as excinfo:
        classify(local="a", remote="a", fetch_error=True)

    assert "origin" in str(excinfo.value)
