"""Tests for mapping roster job labels onto the caller's jobs."""

from job_resolver import resolve_job
from models import JobAlias, JobConfig

JOBS = [
    JobConfig(id="job-grill", name="Grill"),
    JobConfig(id="job-am", name="AM"),
    JobConfig(id="job-swanston", name="746 Swanston"),
]


def test_alias_beats_job_name_with_same_text():
    aliases = [JobAlias(alias="AM", job_config_id="job-grill")]
    assert resolve_job("AM", aliases, JOBS) == "job-grill"


def test_exact_name_is_case_and_space_insensitive():
    assert resolve_job("  grill ", [], JOBS) == "job-grill"


def test_short_exact_name_still_matches():
    assert resolve_job("am", [], JOBS) == "job-am"


def test_two_character_label_never_partial_matches():
    assert resolve_job("RL", [], JOBS) is None
    assert resolve_job("ri", [], JOBS) is None


def test_partial_match_in_both_directions():
    assert resolve_job("Swanston", [], JOBS) == "job-swanston"
    assert resolve_job("Grill station 2", [], JOBS) == "job-grill"


def test_short_job_names_are_not_partial_targets():
    # "am" is inside "Camberwell" but the job name is too short to count
    assert resolve_job("Camberwell", [], JOBS) is None


def test_empty_label_resolves_to_none():
    assert resolve_job("", [], JOBS) is None
    assert resolve_job(None, [], JOBS) is None


def test_aliases_accept_camel_case_wire_names():
    alias = JobAlias.model_validate({"alias": "Kitchen", "jobConfigId": "job-grill"})
    assert resolve_job("kitchen", [alias], JOBS) == "job-grill"
