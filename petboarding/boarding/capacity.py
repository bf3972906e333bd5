"""Static capacity configuration and room-type normalization."""

from __future__ import annotations

from typing import Iterable, Mapping, NamedTuple

from .errors import ValidationError

OVERNIGHT = "overnight"
DAYCARE = "daycare"
GROOMING = "grooming"
SERVICE_TYPES = (OVERNIGHT, DAYCARE, GROOMING)

DEFAULT_CAPACITY = 10


class CapacityRule(NamedTuple):
    service_type: str
    room_type: str | None
    key: str | None
    service_name: str
    capacity: int


# Numbers mirror the business's service catalogue; override through config.
CAPACITY_RULES: tuple[CapacityRule, ...] = (
    CapacityRule(OVERNIGHT, "Deluxe Room", "deluxe", "Deluxe Room", 10),
    CapacityRule(OVERNIGHT, "Premium Room", "premium", "Premium Room", 10),
    CapacityRule(OVERNIGHT, "Executive Room", "executive", "Executive Room", 2),
    CapacityRule(DAYCARE, None, None, "Pet Daycare", 10),
    CapacityRule(GROOMING, "Basic Grooming", "basic", "Basic Bath & Dry", 10),
    CapacityRule(GROOMING, "Special Grooming", "special", "Special Care Package", 5),
    CapacityRule(GROOMING, "Premium Grooming", "premium", "Premium Grooming", 5),
)


def normalize_service_type(service_type: str | None) -> str | None:
    if not service_type:
        return None
    value = str(service_type).strip().lower()
    return value if value in SERVICE_TYPES else None


def normalize_room_type(room_type: str | None, service_type: str | None = None) -> str | None:
    """Map free-form room names onto the canonical tag for a service.

    ``"Deluxe Room"``, ``"deluxe_room"`` and ``"DELUXE"`` all become
    ``"Deluxe Room"``.  Exact matches on the short key or full tag win; any
    string containing a short key is accepted as a fallback.  Overnight is
    assumed when no service type is given.  Daycare has no room subtype.
    """

    service = normalize_service_type(service_type) or OVERNIGHT
    if service == DAYCARE or room_type is None:
        return None
    value = " ".join(str(room_type).strip().lower().replace("_", " ").split())
    if not value:
        return None
    candidates = [rule for rule in CAPACITY_RULES if rule.service_type == service]
    for rule in candidates:
        if value in (rule.key, rule.room_type.lower()):
            return rule.room_type
    for rule in candidates:
        if rule.key in value:
            return rule.room_type
    return None


def canonical_type(service_type: str | None, room_type: str | None) -> tuple[str, str | None]:
    """Return the ``(service_type, room_type)`` pair the stores key on.

    Unrecognised room names are kept (trimmed) so they fall through to the
    default capacity instead of silently merging into another room's pool.
    """

    service = normalize_service_type(service_type)
    if service is None:
        raise ValidationError(f"Invalid service type: {service_type}")
    if service == DAYCARE:
        return service, None
    room = normalize_room_type(room_type, service)
    if room is None and room_type:
        room = str(room_type).strip()
    return service, room


class CapacityTable:
    """Pure lookup of maximum concurrent occupancy per service/room type."""

    def __init__(
        self,
        overrides: Mapping[str | tuple[str, str | None], int] | None = None,
        *,
        default: int = DEFAULT_CAPACITY,
    ) -> None:
        self.default = default
        self._limits: dict[tuple[str, str | None], int] = {
            (rule.service_type, rule.room_type): rule.capacity for rule in CAPACITY_RULES
        }
        for key, value in (overrides or {}).items():
            if isinstance(key, str):
                service_type, _, room_type = key.partition(":")
                key = (service_type, room_type or None)
            service_type, room_type = self._key(*key)
            if service_type not in SERVICE_TYPES:
                raise ValueError(f"Unknown service type in capacity override: {key!r}")
            self._limits[(service_type, room_type)] = int(value)

    @staticmethod
    def _key(service_type: str | None, room_type: str | None) -> tuple[str, str | None]:
        service = normalize_service_type(service_type) or str(service_type or "").strip().lower()
        if service == DAYCARE:
            return service, None
        room = normalize_room_type(room_type, service)
        if room is None and room_type:
            room = str(room_type).strip()
        return service, room

    def capacity(self, service_type: str | None, room_type: str | None = None) -> int:
        return self._limits.get(self._key(service_type, room_type), self.default)

    def rules(self) -> list[CapacityRule]:
        """Every configured rule, with overridden capacities applied."""

        return [rule._replace(capacity=self.capacity(rule.service_type, rule.room_type)) for rule in CAPACITY_RULES]

    def items(self) -> Iterable[tuple[tuple[str, str | None], int]]:
        return self._limits.items()
