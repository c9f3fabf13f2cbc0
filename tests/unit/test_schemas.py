"""Tests for job payloads, diff schemas and partial-record merging."""

import pytest
from pydantic import ValidationError

from garbo_followup.schemas import (
    EqualityGoals,
    FollowUpJob,
    JobLog,
    PartialRecord,
    get_schema,
    response_format,
)
from garbo_followup.schemas.extraction import Scope1Diff, Scope3Diff
from garbo_followup.utils.errors import UnknownSchema


# ===== JOB PAYLOAD =====
def test_job_accepts_camel_case_payload():
    """Test that upstream camelCase payloads are accepted."""
    job = FollowUpJob(**{
        "documentId": "doc-1",
        "url": "https://example.com/report.pdf",
        "prompt": "Add industry",
        "schema": "industry",
        "json": "{}",
        "previousAnswer": "{\"industry\": 1}",
        "stacktrace": ["Attempt 1: invalid"],
    })

    assert job.document_id == "doc-1"
    assert job.source_url == "https://example.com/report.pdf"
    assert job.schema_name == "industry"
    assert job.previous_extraction == "{}"
    assert job.previous_answer == "{\"industry\": 1}"
    assert job.prior_trace == ["Attempt 1: invalid"]


def test_job_defaults():
    """Test optional fields default to an empty first delivery."""
    job = FollowUpJob(
        document_id="doc-1",
        source_url="https://example.com/report.pdf",
        prompt="Add industry",
        schema_name="industry",
    )

    assert job.previous_extraction == ""
    assert job.previous_answer == ""
    assert job.prior_trace == []


def test_job_requires_source_url():
    """Test that an empty source URL is rejected."""
    with pytest.raises(ValidationError):
        FollowUpJob(
            document_id="doc-1",
            source_url="",
            prompt="Add industry",
            schema_name="industry",
        )


def test_redelivery_payload_round_trips(job):
    """Test queue redelivery carries the trace and the last answer."""
    payload = job.redelivery(["Attempt 1: invalid"], "{bad")
    redelivered = FollowUpJob(**payload)

    assert redelivered.prior_trace == ["Attempt 1: invalid"]
    assert redelivered.previous_answer == "{bad"
    assert redelivered.source_url == job.source_url
    assert redelivered.schema_name == job.schema_name


# ===== SCHEMA REGISTRY =====
def test_get_schema_known():
    assert get_schema("scope1") is Scope1Diff
    assert get_schema("equalityGoals") is EqualityGoals


def test_get_schema_unknown():
    with pytest.raises(UnknownSchema, match="Unknown schema 'nope'"):
        get_schema("nope")


def test_response_format_uses_wire_names():
    """Test the JSON schema sent to the model uses camelCase fields."""
    fmt = response_format(Scope3Diff)

    assert fmt["type"] == "json_schema"
    assert fmt["json_schema"]["name"] == "scope3"
    schema_text = str(fmt["json_schema"]["schema"])
    assert "statedTotalEmissions" in schema_text
    assert "stated_total_emissions" not in schema_text


def test_diff_validates_wire_json():
    diff = Scope1Diff.model_validate_json(
        '{"scope1": [{"year": 2023, "total": 10.5}]}'
    )

    assert diff.to_diff() == {"scope1": [{"year": 2023, "total": 10.5}]}


def test_diff_leaves_out_unset_defaults():
    """Test that schema defaults the answer never set stay out of the diff."""
    diff = Scope3Diff.model_validate_json('{"scope3": [{"year": 2023}]}')

    assert diff.to_diff() == {"scope3": [{"year": 2023}]}
    assert PartialRecord({"companyName": "Acme AB"}).merge(diff).to_dict() == {
        "companyName": "Acme AB",
        "scope3": [{"year": 2023}],
    }


def test_diff_keeps_explicit_values_equal_to_defaults():
    diff = Scope1Diff.model_validate_json(
        '{"scope1": [{"year": 2023, "total": 10.5, "unit": "tCO2e"}]}'
    )

    assert diff.to_diff() == {"scope1": [{"year": 2023, "total": 10.5, "unit": "tCO2e"}]}


def test_equality_goals_drop_nulls():
    goals = EqualityGoals.model_validate_json(
        '{"equalityGoals": [{"description": "Mångfaldsprogram", "year": null, '
        '"targetPercentage": null, "baseYear": null}]}'
    )

    assert goals.to_diff() == {"equalityGoals": [{"description": "Mångfaldsprogram"}]}


# ===== PARTIAL RECORD =====
def test_merge_overrides_top_level_fields():
    """Test field-wise override of existing fields."""
    record = PartialRecord({"companyName": "Acme AB", "industry": {"subIndustryCode": "1"}})
    merged = record.merge({"industry": {"subIndustryCode": "2"}})

    assert merged.to_dict() == {
        "companyName": "Acme AB",
        "industry": {"subIndustryCode": "2"},
    }
    # Original untouched
    assert record.to_dict()["industry"] == {"subIndustryCode": "1"}


def test_merge_adds_new_fields_and_ignores_none():
    record = PartialRecord({"companyName": "Acme AB"})
    merged = record.merge({"baseYear": 2019, "goals": None})

    assert merged.to_dict() == {"companyName": "Acme AB", "baseYear": 2019}


def test_merge_accepts_diff_models():
    record = PartialRecord.from_json('{"companyName": "Acme AB"}')
    diff = Scope1Diff.model_validate({"scope1": [{"year": 2022, "total": 5}]})
    merged = record.merge(diff)

    assert merged.to_dict()["scope1"] == [{"year": 2022, "total": 5.0}]
    assert merged.to_dict()["companyName"] == "Acme AB"


def test_from_json_blank_is_empty():
    assert PartialRecord.from_json("").to_dict() == {}
    assert PartialRecord.from_json(None).to_dict() == {}


def test_from_json_rejects_non_objects():
    with pytest.raises(ValueError, match="Expected a JSON object"):
        PartialRecord.from_json("[1, 2]")
    with pytest.raises(ValueError):
        PartialRecord.from_json("{not json")


# ===== JOB LOG =====
def test_job_log_appends_and_extends():
    primary = JobLog()
    primary.log("first")
    auxiliary = JobLog(["second"])
    primary.extend(auxiliary)

    assert primary.lines == ["first", "second"]
    assert len(primary) == 2
