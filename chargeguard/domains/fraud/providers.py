"""External validation providers (IPQualityScore, Twilio Lookup).

Each provider turns one subject into a ``ValidationResult`` with a 0-100 risk
score and a 0-100 confidence. Failures are split in two:

- ``TransientProviderError``: timeout, transport error or 5xx. The caller
  abandons Stage 2 for this order.
- ``ProviderUnavailableError``: missing credentials, 4xx or an unusable body.
  The caller falls through to the next provider for the subject.
"""

from abc import ABC, abstractmethod
from urllib.parse import quote

import httpx
import structlog

from chargeguard.shared.errors import ProviderUnavailableError, TransientProviderError

from .models import ValidationResult
from .subjects import Subject, SubjectKind

logger = structlog.get_logger()

IPQS_BASE_URL = "https://ipqualityscore.com/api/json"
TWILIO_LOOKUP_URL = "https://lookups.twilio.com/v2/PhoneNumbers/{phone}"


async def _get_json(
    client: httpx.AsyncClient,
    provider: str,
    url: str,
    **kwargs,
) -> dict:
    try:
        response = await client.get(url, **kwargs)
    except httpx.TimeoutException as exc:
        raise TransientProviderError(provider, f"{provider}: timed out") from exc
    except httpx.TransportError as exc:
        raise TransientProviderError(provider, f"{provider}: {exc.__class__.__name__}") from exc

    if response.status_code >= 500:
        raise TransientProviderError(provider, f"{provider}: HTTP {response.status_code}")
    if response.status_code >= 400:
        raise ProviderUnavailableError(provider, f"{provider}: HTTP {response.status_code}")

    try:
        data = response.json()
    except ValueError as exc:
        raise ProviderUnavailableError(provider, f"{provider}: response is not JSON") from exc
    if not isinstance(data, dict):
        raise ProviderUnavailableError(provider, f"{provider}: unexpected payload")
    return data


class ValidationProvider(ABC):
    name: str
    kind: SubjectKind

    @property
    @abstractmethod
    def configured(self) -> bool: ...

    @abstractmethod
    async def validate(self, client: httpx.AsyncClient, subject: Subject) -> ValidationResult:
        """Look the subject up. Raises Transient/ProviderUnavailable errors."""
        ...

    def _require_configured(self) -> None:
        if not self.configured:
            raise ProviderUnavailableError(self.name, f"{self.name}: credentials not configured")


class _IPQSProvider(ValidationProvider):
    endpoint: str

    def __init__(self, api_key: str | None) -> None:
        self._api_key = api_key

    @property
    def configured(self) -> bool:
        return bool(self._api_key)

    async def validate(self, client: httpx.AsyncClient, subject: Subject) -> ValidationResult:
        self._require_configured()
        url = f"{IPQS_BASE_URL}/{self.endpoint}/{self._api_key}/{quote(subject.value, safe='')}"
        data = await _get_json(client, self.name, url)

        if data.get("success") is False:
            raise ProviderUnavailableError(self.name, f"{self.name}: {data.get('message', 'rejected')}")

        try:
            fraud_score = float(data.get("fraud_score") or 0)
        except (TypeError, ValueError) as exc:
            raise ProviderUnavailableError(self.name, f"{self.name}: unusable payload") from exc
        return ValidationResult(
            provider=self.name,
            subject_key=subject.key,
            risk_score=max(0.0, min(fraud_score, 100.0)),
            confidence=85.0 if fraud_score > 0 else 60.0,
            signals=self._signals(data),
        )

    def _signals(self, data: dict) -> dict:
        return {"fraud_score": data.get("fraud_score"), "recent_abuse": data.get("recent_abuse")}


class IPQSPhoneProvider(_IPQSProvider):
    name = "ipqs_phone"
    kind = SubjectKind.PHONE
    endpoint = "phone"

    def _signals(self, data: dict) -> dict:
        return {
            **super()._signals(data),
            "voip": data.get("VOIP"),
            "active": data.get("active"),
            "line_type": data.get("line_type"),
            "carrier": data.get("carrier"),
        }


class IPQSEmailProvider(_IPQSProvider):
    name = "ipqs_email"
    kind = SubjectKind.EMAIL
    endpoint = "email"

    def _signals(self, data: dict) -> dict:
        return {
            **super()._signals(data),
            "valid": data.get("valid"),
            "disposable": data.get("disposable"),
        }


class IPQSIPProvider(_IPQSProvider):
    name = "ipqs_ip"
    kind = SubjectKind.IP
    endpoint = "ip"

    def _signals(self, data: dict) -> dict:
        return {
            **super()._signals(data),
            "proxy": data.get("proxy"),
            "vpn": data.get("vpn"),
            "tor": data.get("tor"),
            "country_code": data.get("country_code"),
        }


class TwilioLookupProvider(ValidationProvider):
    """Twilio Lookup v2 with line type intelligence."""

    name = "twilio_lookup"
    kind = SubjectKind.PHONE

    def __init__(self, account_sid: str | None, auth_token: str | None) -> None:
        self._account_sid = account_sid
        self._auth_token = auth_token

    @property
    def configured(self) -> bool:
        return bool(self._account_sid and self._auth_token)

    async def validate(self, client: httpx.AsyncClient, subject: Subject) -> ValidationResult:
        self._require_configured()
        data = await _get_json(
            client,
            self.name,
            TWILIO_LOOKUP_URL.format(phone=quote(subject.value, safe="")),
            params={"Fields": "caller_name,line_type_intelligence"},
            auth=(self._account_sid, self._auth_token),
        )

        valid = bool(data.get("valid"))
        intelligence = data.get("line_type_intelligence") or {}
        if not isinstance(intelligence, dict):
            raise ProviderUnavailableError(self.name, f"{self.name}: unusable payload")
        line_type = intelligence.get("type")
        risk = 0.0
        if not valid:
            risk += 50
        if line_type in ("nonFixedVoip", "voip"):
            risk += 20

        return ValidationResult(
            provider=self.name,
            subject_key=subject.key,
            risk_score=risk,
            confidence=75.0 if valid else 50.0,
            signals={
                "valid": valid,
                "line_type": line_type,
                "country_code": data.get("country_code"),
            },
        )


def build_providers(
    ipqs_api_key: str | None = None,
    twilio_account_sid: str | None = None,
    twilio_auth_token: str | None = None,
) -> dict[str, ValidationProvider]:
    """Provider registry keyed by name. Unconfigured providers are kept and report unavailable."""
    providers: list[ValidationProvider] = [
        IPQSPhoneProvider(ipqs_api_key),
        IPQSEmailProvider(ipqs_api_key),
        IPQSIPProvider(ipqs_api_key),
        TwilioLookupProvider(twilio_account_sid, twilio_auth_token),
    ]
    registry = {p.name: p for p in providers}
    logger.info(
        "validation_providers_built",
        configured=[name for name, p in registry.items() if p.configured],
    )
    return registry
