# job_resolver.py
from typing import Optional, Sequence

from models import JobAlias, JobConfig

# Substring matching below this length produces nonsense ("RL" in "Grill").
MIN_PARTIAL_LENGTH = 3


def _norm(text: Optional[str]) -> str:
    return (text or "").strip().lower()


def resolve_job(
    label: Optional[str],
    job_aliases: Sequence[JobAlias],
    job_configs: Sequence[JobConfig],
) -> Optional[str]:
    """
    Map a roster job label to one of the caller's job ids.

    Precedence: exact alias, then exact job name, then a substring match in
    either direction. Returns None when nothing matches.
    """
    needle = _norm(label)
    if not needle:
        return None

    for alias in job_aliases:
        if _norm(alias.alias) == needle:
            return alias.job_config_id

    for job in job_configs:
        if _norm(job.name) == needle:
            return job.id

    if len(needle) < MIN_PARTIAL_LENGTH:
        return None

    for job in job_configs:
        name = _norm(job.name)
        if len(name) >= MIN_PARTIAL_LENGTH and (needle in name or name in needle):
            return job.id

    return None
