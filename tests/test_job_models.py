"""Tests for job models — request validation, payload variants, serialization."""

import json

import pytest

from cronpush.errors import ValidationError
from cronpush.notifications.models import Severity
from cronpush.scheduler.models import (
    DailySummaryPayload,
    Job,
    JobSpec,
    JobType,
    NotificationCheckPayload,
    parse_payload,
)


def _body(**overrides) -> dict:
    body = {
        "name": "Morning ping",
        "cronExpression": "0 9 * * *",
        "jobType": "notification_check",
        "jobData": {"title": "Hello", "message": "Good morning"},
    }
    body.update(overrides)
    return body


class TestJobSpec:
    def test_from_camel_case_body(self):
        spec = JobSpec.from_payload(_body())
        assert spec.name == "Morning ping"
        assert spec.cron_expression == "0 9 * * *"
        assert spec.job_type is JobType.NOTIFICATION_CHECK
        assert spec.is_active is True
        assert spec.is_one_time is False

    def test_job_data_as_json_string(self):
        spec = JobSpec.from_payload(_body(jobData=json.dumps({"title": "A", "message": "B"})))
        assert spec.job_data == {"title": "A", "message": "B"}

    def test_job_data_invalid_json_string(self):
        with pytest.raises(ValidationError, match="not valid JSON"):
            JobSpec.from_payload(_body(jobData="{nope"))

    def test_expression_whitespace_normalised(self):
        spec = JobSpec.from_payload(_body(cronExpression=" 0  9 * * * "))
        assert spec.cron_expression == "0 9 * * *"

    def test_blank_name_rejected(self):
        with pytest.raises(ValidationError, match="Name is required"):
            JobSpec.from_payload(_body(name="   "))

    def test_missing_expression_rejected(self):
        body = _body()
        del body["cronExpression"]
        with pytest.raises(ValidationError):
            JobSpec.from_payload(body)

    def test_invalid_expression_rejected(self):
        with pytest.raises(ValidationError, match="exactly 5 parts"):
            JobSpec.from_payload(_body(cronExpression="0 9 * *"))

    def test_unknown_job_type_rejected(self):
        with pytest.raises(ValidationError):
            JobSpec.from_payload(_body(jobType="backup"))

    def test_notification_check_needs_title(self):
        with pytest.raises(ValidationError, match="Invalid jobData for notification_check"):
            JobSpec.from_payload(_body(jobData={"message": "no title"}))

    def test_non_object_body_rejected(self):
        with pytest.raises(ValidationError, match="JSON object"):
            JobSpec.from_payload(["not", "a", "dict"])


class TestPayloads:
    def test_notification_check_defaults(self):
        payload = parse_payload(JobType.NOTIFICATION_CHECK, {"title": "T", "message": "M"})
        assert isinstance(payload, NotificationCheckPayload)
        assert payload.type is Severity.INFO
        assert payload.to_user_id is None

    def test_notification_check_blank_message(self):
        with pytest.raises(ValidationError):
            parse_payload(JobType.NOTIFICATION_CHECK, {"title": "T", "message": "  "})

    def test_daily_summary_defaults(self):
        payload = parse_payload(JobType.DAILY_SUMMARY, None)
        assert isinstance(payload, DailySummaryPayload)
        assert payload.window_hours == 24

    def test_daily_summary_window_must_be_positive(self):
        with pytest.raises(ValidationError):
            parse_payload(JobType.DAILY_SUMMARY, {"windowHours": 0})

    def test_custom_accepts_anything(self):
        payload = parse_payload(JobType.CUSTOM, {"anything": [1, 2]})
        assert payload.model_dump() == {"anything": [1, 2]}


class TestJob:
    def test_from_spec(self):
        job = Job.from_spec(JobSpec.from_payload(_body(isOneTime=True)))
        assert len(job.id) == 32
        assert job.active is True
        assert job.one_time is True
        assert job.completed is False
        assert job.created_at == job.updated_at

    def test_row_round_trip(self):
        job = Job(
            id="j1",
            name="Ping",
            cron_expression="*/5 * * * *",
            job_type="notification_check",
            job_data={"title": "T", "message": "M"},
            active=True,
            last_run_at="2026-10-19T10:00:00+00:00",
        )
        assert Job.from_row(job.to_row()) == job

    def test_to_api(self):
        job = Job(
            id="j1",
            name="Ping",
            cron_expression="*/5 * * * *",
            job_type="notification_check",
            job_data={"title": "T", "message": "M"},
        )
        data = job.to_api()
        assert data["cronExpression"] == "*/5 * * * *"
        assert data["scheduleDescription"] == "Every 5 minutes"
        assert data["jobType"] == "notification_check"
        assert json.loads(data["jobData"]) == {"title": "T", "message": "M"}
        assert data["isActive"] is False
        assert data["nextRun"] is None
