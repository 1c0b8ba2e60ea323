"""Reservation pricing: amount and human-readable description."""

from __future__ import annotations

from dataclasses import dataclass
from decimal import Decimal, InvalidOperation

from coworking_payments.exceptions import ValidationError
from coworking_payments.models import Payer, PricingResult, ReservationRequest

DAILY = "daily"
MONTHLY = "monthly"
HOURLY = "hourly"


@dataclass(frozen=True)
class Rates:
    """Per-unit prices, one currency unit each unless configured otherwise."""

    daily: Decimal = Decimal("1")
    monthly: Decimal = Decimal("1")
    hourly: Decimal = Decimal("1")

    @classmethod
    def from_config(cls, config) -> "Rates":
        return cls(
            daily=to_decimal(config["COWORKING_DAILY_RATE"]),
            monthly=to_decimal(config["COWORKING_MONTHLY_RATE"]),
            hourly=to_decimal(config["COWORKING_HOURLY_RATE"]),
        )


def to_decimal(value) -> Decimal:
    """Coerce *value* to :class:`~decimal.Decimal`, raising ``ValidationError``."""
    try:
        return Decimal(str(value).strip())
    except (InvalidOperation, ValueError, TypeError) as exc:
        raise ValidationError("Valor inválido", f"{value!r} is not a number") from exc


def to_count(value, field: str) -> int | None:
    """Read a whole-number count; fractional and non-numeric values are rejected."""
    if value is None or value == "":
        return None
    if isinstance(value, bool) or (isinstance(value, float) and not value.is_integer()):
        raise ValidationError("Dados inválidos", f"{field} must be an integer")
    try:
        return int(value)
    except (TypeError, ValueError) as exc:
        raise ValidationError("Dados inválidos", f"{field} must be an integer") from exc


def _day_count(value) -> int:
    # Front ends send either the list of selected days or a plain number.
    if isinstance(value, (list, tuple)):
        return len(value)
    count = to_count(value, "dias")
    return count if count is not None else 1


def _first(data: dict, *keys):
    for key in keys:
        if data.get(key) is not None:
            return data[key]
    return None


def parse_reservation(data: dict, default_tax_id_type: str = "CPF") -> ReservationRequest:
    """Read a :class:`ReservationRequest` from a ``create-preference`` body.

    Portuguese keys sent by the reservation front end (``tipo``, ``dias``,
    ``mes``, ``horario``) and their English counterparts are both accepted.
    """
    return ReservationRequest(
        kind=_first(data, "kind", "tipo"),
        day_count=_day_count(_first(data, "dias", "dayCount")),
        month_count=to_count(_first(data, "mes", "monthCount"), "mes"),
        hour_count=to_count(_first(data, "horario", "hourCount"), "horario"),
        payer=Payer.from_dict(data.get("payer"), default_tax_id_type),
    )


def _plural(count: int, singular: str, plural: str) -> str:
    return f"{count} {singular if count == 1 else plural}"


def calculate_price(request: ReservationRequest, rates: Rates) -> PricingResult:
    """Return the amount and description for *request*.

    An unknown kind yields a zero amount and an empty description, which
    :func:`ensure_valid` rejects.
    """
    days = max(1, request.day_count)

    if request.kind == DAILY:
        return PricingResult(
            amount=rates.daily * days,
            description=f"Reserva de coworking - Diária ({_plural(days, 'dia', 'dias')})",
        )
    if request.kind == MONTHLY:
        months = request.month_count or 1
        return PricingResult(
            amount=rates.monthly * months,
            description=f"Reserva de coworking - Mensal ({_plural(months, 'mês', 'meses')})",
        )
    if request.kind == HOURLY:
        hours = request.hour_count or 1
        return PricingResult(
            amount=rates.hourly * hours * days,
            description=(
                "Reserva de coworking - Por Hora "
                f"({_plural(hours, 'hora', 'horas')} em {_plural(days, 'dia', 'dias')})"
            ),
        )
    return PricingResult(amount=Decimal("0"), description="")


def ensure_valid(result: PricingResult) -> PricingResult:
    """Raise :class:`ValidationError` unless *result* can be charged."""
    if not result.amount or result.amount <= 0 or not result.description:
        raise ValidationError(
            "Dados inválidos",
            "Não foi possível calcular o valor do pagamento. Verifique os campos enviados.",
        )
    return result
