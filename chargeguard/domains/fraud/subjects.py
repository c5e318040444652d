"""Identity subjects checked by external validation."""

import ipaddress
import re
from dataclasses import dataclass
from enum import StrEnum

from .models import OrderSnapshot


class SubjectKind(StrEnum):
    PHONE = "phone"
    EMAIL = "email"
    IP = "ip"
    DEVICE = "device"


@dataclass(frozen=True)
class Subject:
    kind: SubjectKind
    value: str

    @property
    def key(self) -> str:
        return f"{self.kind}:{self.value}"


def normalize_phone(raw: str) -> str | None:
    """E.164-ish: keep digits, assume North America for bare 10-digit numbers."""
    digits = re.sub(r"\D", "", raw)
    if not digits:
        return None
    if not raw.strip().startswith("+") and len(digits) == 10:
        digits = "1" + digits
    return f"+{digits}"


def normalize_email(raw: str) -> str | None:
    email = raw.strip().lower()
    return email if "@" in email else None


def normalize_ip(raw: str) -> str | None:
    try:
        return ipaddress.ip_address(raw.strip()).compressed
    except ValueError:
        return None


def normalize_device(raw: str) -> str | None:
    fingerprint = raw.strip()
    return fingerprint or None


def subjects_for(order: OrderSnapshot) -> list[Subject]:
    subjects: list[Subject] = []
    if order.customer_phone and (phone := normalize_phone(order.customer_phone)):
        subjects.append(Subject(SubjectKind.PHONE, phone))
    if order.customer_email and (email := normalize_email(order.customer_email)):
        subjects.append(Subject(SubjectKind.EMAIL, email))
    if order.ip_address and (ip := normalize_ip(order.ip_address)):
        subjects.append(Subject(SubjectKind.IP, ip))
    if order.device_fingerprint and (device := normalize_device(order.device_fingerprint)):
        subjects.append(Subject(SubjectKind.DEVICE, device))
    return subjects
