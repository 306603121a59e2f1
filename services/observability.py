"""Prometheus metrics for collaborator calls and pipeline outcomes."""

from fastapi import APIRouter
from fastapi.responses import Response
from prometheus_client import CONTENT_TYPE_LATEST, Counter, generate_latest

external_call_outcomes = Counter(
    "trendmint_external_call_outcomes_total",
    "External collaborator call outcomes",
    ["system", "result"],
)

pipeline_decisions = Counter(
    "trendmint_pipeline_decisions_total",
    "Decisions taken by the pipeline",
    ["source", "outcome"],
)

action_outcomes = Counter(
    "trendmint_action_outcomes_total",
    "Replies and mints dispatched",
    ["action", "result"],
)

metrics_router = APIRouter()


@metrics_router.get("/metrics")
async def metrics_endpoint():
    return Response(generate_latest(), media_type=CONTENT_TYPE_LATEST)


def record_external_call(system: str, result: str):
    external_call_outcomes.labels(system=system, result=result).inc()


def record_decision(source: str, outcome: str):
    pipeline_decisions.labels(source=source, outcome=outcome).inc()


def record_action_outcome(action: str, result: str):
    action_outcomes.labels(action=action, result=result).inc()
