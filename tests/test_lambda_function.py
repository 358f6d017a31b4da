"""Tests for the Lambda entry point and failure notifications."""

import json
from unittest.mock import MagicMock

import pytest

import lambda_function
from cost_scheduler import notifications
from cost_scheduler.errors import ScheduleNotFoundError
from cost_scheduler.models import ScanResult
from cost_scheduler.settings import load_settings


def scan_result(mode):
    return ScanResult(
        success=True,
        execution_id="exec-1",
        mode=mode,
        schedules_processed=1,
        resources_started=1,
        resources_stopped=0,
        resources_failed=0,
        duration=12,
        status="success",
    )


@pytest.fixture
def orchestrator(monkeypatch):
    fake = MagicMock()
    fake.run_full_scan.return_value = scan_result("full")
    fake.run_partial_scan.return_value = scan_result("partial")
    monkeypatch.setattr(lambda_function, "build_orchestrator", lambda settings: fake)
    return fake


@pytest.fixture
def notify(monkeypatch):
    sent = MagicMock()
    monkeypatch.setattr(lambda_function, "notify_failure", sent)
    return sent


def test_scheduled_event_runs_full_scan(orchestrator):
    result = lambda_function.handler({"source": "aws.events", "detail-type": "Scheduled Event"}, None)

    orchestrator.run_full_scan.assert_called_once_with(triggered_by="system")
    assert result["mode"] == "full"
    assert result["resourcesStarted"] == 1
    assert result["executionId"] == "exec-1"


def test_schedule_id_runs_partial_scan(orchestrator):
    result = lambda_function.handler(
        {"scheduleId": "sched-1", "tenantId": "t-1", "userEmail": "ops@example.com"},
        None,
    )

    orchestrator.run_partial_scan.assert_called_once_with(
        schedule_id="sched-1",
        schedule_name=None,
        tenant_id="t-1",
        user_email="ops@example.com",
        triggered_by="web-ui",
    )
    assert result["mode"] == "partial"


def test_unknown_schedule_returns_failed_result(orchestrator, notify):
    orchestrator.run_partial_scan.side_effect = ScheduleNotFoundError("Schedule not found: nope")

    result = lambda_function.handler({"scheduleName": "nope"}, None)

    assert result["success"] is False
    assert result["status"] == "failed"
    assert result["errors"] == ["Schedule not found: nope"]
    notify.assert_not_called()


def test_fatal_error_notifies_and_raises(orchestrator, notify):
    orchestrator.run_full_scan.side_effect = RuntimeError("table unreachable")

    with pytest.raises(RuntimeError):
        lambda_function.handler({}, None)

    notify.assert_called_once()
    assert "table unreachable" in notify.call_args.args[1]


def test_notify_failure_publishes_to_sns():
    settings = load_settings({"SNS_TOPIC_ARN": "arn:aws:sns:ap-south-1:111111111111:scheduler-alerts"})
    sns = MagicMock()

    assert notifications.notify_failure(settings, "boom", sns_client=sns) == ["sns"]

    kwargs = sns.publish.call_args.kwargs
    assert kwargs["TopicArn"] == "arn:aws:sns:ap-south-1:111111111111:scheduler-alerts"
    assert kwargs["Message"] == "Error in scheduler: boom"


def test_notify_failure_posts_webhooks(monkeypatch):
    posted = []
    monkeypatch.setattr(notifications, "_post_json", lambda url, payload: posted.append((url, json.loads(payload))))
    settings = load_settings(
        {
            "SLACK_WEBHOOK_URL": "https://hooks.slack.example/T/B/X",
            "TEAMS_WEBHOOK_URL": "https://teams.example/webhook",
        }
    )

    assert notifications.notify_failure(settings, "boom") == ["slack", "teams"]
    assert posted[0][1]["text"] == "Error in scheduler: boom"
    assert posted[1] == ("https://teams.example/webhook", {"text": "Error in scheduler: boom"})


def test_notify_failure_survives_channel_errors():
    settings = load_settings({"SNS_TOPIC_ARN": "arn:aws:sns:ap-south-1:111111111111:alerts"})
    sns = MagicMock()
    sns.publish.side_effect = RuntimeError("sns down")

    assert notifications.notify_failure(settings, "boom", sns_client=sns) == []
