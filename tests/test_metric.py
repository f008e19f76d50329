from unittest.mock import patch

import pytest

from run_ci.controller import Action, Controller
from run_ci.metric import (
    api_call_count,
    outcome_counter,
    push_metrics,
    push_registry,
    record_api_call,
)
from run_ci.model import Config

from conftest import BEHIND_SHA, FakeAPI


def test_record_api_call_tracks_endpoint_label():
    before = api_call_count.labels(endpoint="pulls")._value.get()
    record_api_call(endpoint="pulls")
    after = api_call_count.labels(endpoint="pulls")._value.get()
    assert after == before + 1


@pytest.mark.asyncio
async def test_outcomes_are_counted(make_pr):
    cfg = Config(owner="org", repo="repo", github_token="t", base="main")
    api = FakeAPI([make_pr(1), make_pr(2, base_sha=BEHIND_SHA)])
    ctrl = Controller(config=cfg, api=api, git=None, dry_run=True)

    before = {
        action: outcome_counter.labels(action=action.value)._value.get()
        for action in Action
    }
    await ctrl.update_prs()

    assert outcome_counter.labels(action="up-to-date")._value.get() == (
        before[Action.up_to_date] + 1
    )
    assert outcome_counter.labels(action="triggered")._value.get() == (
        before[Action.triggered] + 1
    )
    assert outcome_counter.labels(action="failed")._value.get() == (
        before[Action.failed]
    )


def test_push_metrics_uses_push_registry():
    with patch("run_ci.metric.push_to_gateway") as push:
        push_metrics("localhost:9091")
    push.assert_called_once_with("localhost:9091", job="run-ci", registry=push_registry)


def test_push_metrics_failure_is_logged(caplog):
    with patch("run_ci.metric.push_to_gateway", side_effect=OSError("refused")):
        push_metrics("localhost:9091")
    assert "Pushing metrics to localhost:9091 failed" in caplog.text
