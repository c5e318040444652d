"""Shared request dependencies."""

from fastapi import Header, Request

from chargeguard.domains.fraud.pipeline import RiskFusionPipeline
from chargeguard.domains.monitoring.scheduler import MonitoringScheduler
from chargeguard.domains.orders.processor import OrderProcessor


async def get_merchant_id(x_merchant_id: str | None = Header(default=None)) -> str:  # noqa: B008
    """Merchant identity injected by the auth gateway."""
    if x_merchant_id is None or not x_merchant_id.strip():
        raise PermissionError("Missing X-Merchant-ID header")
    return x_merchant_id.strip()


# Collaborators are built once in the app lifespan and kept on app.state.
def get_order_processor(request: Request) -> OrderProcessor:
    return request.app.state.order_processor


def get_monitoring_scheduler(request: Request) -> MonitoringScheduler:
    return request.app.state.monitoring_scheduler


def get_pipeline(request: Request) -> RiskFusionPipeline:
    return request.app.state.pipeline
