"""
Throttle configuration, key derivation, backoff and admission.
"""

from job_throttle.throttle.backoff import compute_delay_range, sample_delay
from job_throttle.throttle.controller import AdmissionController
from job_throttle.throttle.keys import derive_key, encode_segment
from job_throttle.throttle.registry import ThrottleRegistry

__all__ = [
    "AdmissionController",
    "ThrottleRegistry",
    "derive_key",
    "encode_segment",
    "compute_delay_range",
    "sample_delay",
]
