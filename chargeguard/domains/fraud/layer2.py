"""Stage 2: external identity validation behind the shared cache."""

import asyncio
from datetime import datetime

import httpx
import structlog
from sqlalchemy.ext.asyncio import AsyncSession

from chargeguard.shared.errors import ProviderUnavailableError, TransientProviderError

from .cache import ExternalValidationCache
from .config import FusionConfig, default_config
from .models import Layer2Result, Layer2Source, OrderSnapshot, ValidationResult
from .providers import ValidationProvider
from .subjects import Subject, SubjectKind, subjects_for

logger = structlog.get_logger()


class ExternalValidator:
    """Validates an order's phone, email, IP and device against external providers.

    Cache reads and writes go through the caller's session one at a time;
    only the network lookups for cache misses run concurrently. The whole
    stage is bounded by ``stage2_timeout_seconds``. Any transient provider
    failure aborts the stage with ``TransientProviderError``.
    """

    def __init__(
        self,
        providers: dict[str, ValidationProvider],
        cache: ExternalValidationCache | None = None,
        config: FusionConfig | None = None,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        self._providers = providers
        self._config = config or default_config
        self._cache = cache or ExternalValidationCache(self._config)
        self._transport = transport

    def _chain(self, kind: SubjectKind) -> tuple[str, ...]:
        layer2 = self._config.layer2
        return {
            SubjectKind.PHONE: layer2.phone_providers,
            SubjectKind.EMAIL: layer2.email_providers,
            SubjectKind.IP: layer2.ip_providers,
            SubjectKind.DEVICE: layer2.device_providers,
        }[kind]

    async def validate(
        self,
        session: AsyncSession,
        order: OrderSnapshot,
        now: datetime,
    ) -> Layer2Result | None:
        subjects = subjects_for(order)
        if not subjects:
            return None

        sources: list[Layer2Source] = []
        results: list[ValidationResult] = []
        misses: list[Subject] = []

        for subject in subjects:
            cached = await self._cache.get(session, subject.key, now)
            if cached is None:
                misses.append(subject)
                continue
            results.append(cached)
            sources.append(
                Layer2Source(
                    subject_key=subject.key,
                    provider=cached.provider,
                    risk_score=cached.risk_score,
                    confidence=cached.confidence,
                    from_cache=True,
                )
            )

        if misses:
            try:
                fetched = await asyncio.wait_for(
                    self._fetch_all(misses),
                    timeout=self._config.layer2.stage2_timeout_seconds,
                )
            except TimeoutError as exc:
                raise TransientProviderError("stage2", "Stage 2 timed out") from exc

            for result in fetched:
                if result is None:
                    continue
                await self._cache.put(session, result, now)
                results.append(result)
                sources.append(
                    Layer2Source(
                        subject_key=result.subject_key,
                        provider=result.provider,
                        risk_score=result.risk_score,
                        confidence=result.confidence,
                    )
                )

        if not results:
            logger.info("layer2_no_results", merchant_id=order.merchant_id, order_id=order.order_id)
            return None

        score = max(r.risk_score for r in results)
        confidence = sum(r.confidence for r in results) / len(results) / 100
        return Layer2Result(
            score=round(score, 2),
            confidence=round(confidence, 4),
            sources=sources,
        )

    async def _fetch_all(self, subjects: list[Subject]) -> list[ValidationResult | None]:
        timeout = httpx.Timeout(self._config.layer2.provider_timeout_seconds)
        async with httpx.AsyncClient(timeout=timeout, transport=self._transport) as client:
            outcomes = await asyncio.gather(
                *(self._fetch_subject(client, subject) for subject in subjects),
                return_exceptions=True,
            )

        fetched: list[ValidationResult | None] = []
        for outcome in outcomes:
            if isinstance(outcome, BaseException):
                raise outcome
            fetched.append(outcome)
        return fetched

    async def _fetch_subject(
        self,
        client: httpx.AsyncClient,
        subject: Subject,
    ) -> ValidationResult | None:
        for name in self._chain(subject.kind):
            provider = self._providers.get(name)
            if provider is None:
                continue
            try:
                result = await provider.validate(client, subject)
            except ProviderUnavailableError as exc:
                logger.info("provider_unavailable", provider=name, subject_kind=str(subject.kind), reason=exc.message)
                continue
            logger.debug(
                "provider_validated",
                provider=name,
                subject_kind=str(subject.kind),
                risk_score=result.risk_score,
            )
            return result
        return None
