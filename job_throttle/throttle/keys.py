"""
Lock key generation.

Keys must be identical in every worker process for the same job, so this
module only uses the job type, the bucket and the spec's key. Every
segment is percent-encoded, so no segment can contain the ``:`` separator
and distinct inputs never produce the same key.
"""

from typing import Any
from urllib.parse import quote

from job_throttle.constants import (
    DEFAULT_LOCK_KEY_PREFIX,
    STATIC_KEY_MARKER,
    THROTTLE_KEY_PREFIX,
)
from job_throttle.types.throttle import ThrottleSpec


def encode_segment(value: Any) -> str:
    """Percent-encode one key segment, including ``:``, ``@`` and ``%``."""
    return quote(str(value), safe="")


def derive_key(
    job_type: str,
    bucket: str,
    spec: ThrottleSpec,
    job: Any,
    prefix: str = DEFAULT_LOCK_KEY_PREFIX,
) -> str:
    """
    Derive the lock key of a job attempt.

    Layouts:
    - no key:       ``{prefix}:throttle_{bucket}:{job_type}``
    - key function: ``{prefix}:throttle_{bucket}:{job_type}:{value}``
    - static key:   ``{prefix}:throttle_{bucket}:@{key}``

    A static key replaces the job type so several job types can share a
    slot. Its ``@`` marker is never produced by an encoded job type.

    Args:
        job_type: The job type name.
        bucket: The resolved bucket.
        spec: The bucket's throttle spec.
        job: The job instance passed to a key function.
        prefix: Namespace of all throttle keys.

    Returns:
        The lock key.
    """
    parts = [prefix, f"{THROTTLE_KEY_PREFIX}{encode_segment(bucket)}"]

    if spec.key is None:
        parts.append(encode_segment(job_type))
    elif callable(spec.key):
        parts.append(encode_segment(job_type))
        parts.append(encode_segment(spec.key(job)))
    else:
        parts.append(f"{STATIC_KEY_MARKER}{encode_segment(spec.key)}")

    return ":".join(parts)
