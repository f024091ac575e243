"""Messaging: egress pipeline, ingress bridge and provider DTOs."""

from operator_plane.messaging.egress import EgressPipeline, EgressResult, EgressState
from operator_plane.messaging.ingress import IngressResult, build_ingress_request, run_ingress

__all__ = [
    "EgressPipeline",
    "EgressResult",
    "EgressState",
    "IngressResult",
    "build_ingress_request",
    "run_ingress",
]
