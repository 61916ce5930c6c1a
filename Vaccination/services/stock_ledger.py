"""
Stock ledger: vaccine lots and the reservations that tie one unit of a lot to
one scheduled appointment.

Reservations follow the appointment: reserved when it is scheduled, released
(quantity restored) when it is cancelled, moved away or lapses, and consumed
(quantity kept off the lot) when the dose is administered.
"""
import logging
from datetime import date, datetime

from django.db.models import F, Sum
from django.utils import timezone
from django.utils.dateparse import parse_date

from ..exceptions import ResourceExhausted, ValidationFailed
from ..models import StockLot, StockReservation

logger = logging.getLogger(__name__)

OWNER_TYPES = {
    'NATIONAL': StockLot.OWNER_NATIONAL,
    'REGIONAL': StockLot.OWNER_REGIONAL,
    'DISTRICT': StockLot.OWNER_DISTRICT,
    'HEALTHCENTER': StockLot.OWNER_HEALTHCENTER,
}


def normalize_owner_id(owner_type, owner_id):
    return None if owner_type == StockLot.OWNER_NATIONAL else owner_id


def determine_status_from_expiration(expiration, today=None):
    today = today or timezone.localdate()
    return StockLot.STATUS_EXPIRED if expiration <= today else StockLot.STATUS_VALID


def ensure_positive_integer(value, field_name=None):
    if isinstance(value, bool) or not isinstance(value, int) or value <= 0:
        label = field_name or "The value"
        raise ValidationFailed(f"{label} must be a positive integer")
    return value


def _as_date(value):
    if isinstance(value, datetime):
        return timezone.localdate(value) if timezone.is_aware(value) else value.date()
    if isinstance(value, date):
        return value
    parsed = parse_date(str(value)) if value else None
    if parsed is None:
        raise ValidationFailed("Invalid expiration date")
    return parsed


def create_lot(vaccine, owner_type, owner_id, quantity, expiration, status=None, source_lot=None):
    """Register a new lot. Quantity 0 is only accepted for PENDING lots."""
    if owner_type not in OWNER_TYPES.values():
        raise ValidationFailed(f"Unknown stock owner type: {owner_type}")

    expiration_date = _as_date(expiration)

    is_pending = status == StockLot.STATUS_PENDING
    if not isinstance(quantity, int) or quantity < 0 or (not is_pending and quantity <= 0):
        raise ValidationFailed("Lot quantity must be positive (or 0 for a pending lot)")

    lot_status = status or determine_status_from_expiration(expiration_date)
    # An expired date wins over whatever status was asked for
    if determine_status_from_expiration(expiration_date) == StockLot.STATUS_EXPIRED:
        lot_status = StockLot.STATUS_EXPIRED

    lot = StockLot.objects.create(
        vaccine=vaccine,
        owner_type=owner_type,
        owner_id=normalize_owner_id(owner_type, owner_id),
        quantity=quantity,
        remaining_quantity=quantity,
        expiration=expiration_date,
        status=lot_status,
        source_lot=source_lot,
    )
    logger.info(f"Lot {lot.pk} created: {quantity} x vaccine {lot.vaccine_id} for {owner_type}/{owner_id} ({lot_status})")
    return lot


def available_quantity(vaccine_id, owner_type, owner_id):
    """Remaining quantity over the owner's valid lots."""
    total = StockLot.objects.filter(
        vaccine_id=vaccine_id,
        owner_type=owner_type,
        owner_id=normalize_owner_id(owner_type, owner_id),
        status=StockLot.STATUS_VALID,
    ).aggregate(total=Sum('remaining_quantity'))['total']
    return total or 0


def reserve_dose_for_health_center(vaccine_id, health_center_id, quantity=1, appointment_date=None):
    """
    Take ``quantity`` doses off the soonest-expiring valid lot of the health
    center that is still valid on the appointment day.

    Returns ``(lot, quantity)``. Raises ResourceExhausted when no lot fits.
    """
    if not health_center_id:
        raise ValidationFailed("Invalid health center for the reservation")

    qty = ensure_positive_integer(quantity, "The reserved quantity")
    appointment_day = _as_date(appointment_date) if appointment_date else None

    owned = StockLot.objects.filter(
        vaccine_id=vaccine_id,
        owner_type=StockLot.OWNER_HEALTHCENTER,
        owner_id=health_center_id,
    )
    candidates = owned.filter(status=StockLot.STATUS_VALID, remaining_quantity__gte=qty)
    if appointment_day:
        candidates = candidates.filter(expiration__gt=appointment_day)

    lot = candidates.select_for_update().order_by('expiration', 'id').first()

    if lot is None:
        if appointment_day and owned.filter(
            status=StockLot.STATUS_VALID,
            remaining_quantity__gte=qty,
            expiration__lte=appointment_day,
        ).exists():
            raise ResourceExhausted("The remaining stock will expire before the scheduled appointment")

        if owned.filter(status=StockLot.STATUS_EXPIRED, remaining_quantity__gt=0).exists():
            raise ResourceExhausted("All available lots for this vaccine have expired")

        raise ResourceExhausted("Cannot reserve this vaccine: no lot available")

    StockLot.objects.filter(pk=lot.pk).update(remaining_quantity=F('remaining_quantity') - qty)
    lot.refresh_from_db(fields=['remaining_quantity'])

    logger.info(
        f"Reserved {qty} dose(s) of vaccine {vaccine_id} from lot {lot.pk} "
        f"(exp {lot.expiration}, {lot.remaining_quantity} left) for health center {health_center_id}"
    )
    return lot, qty


def release_dose_to_lot(lot_id, quantity=1):
    """Give reserved doses back to their lot."""
    if not lot_id:
        return None
    qty = ensure_positive_integer(quantity, "The released quantity")
    StockLot.objects.filter(pk=lot_id).update(remaining_quantity=F('remaining_quantity') + qty)
    return True


def reserve_for_appointment(appointment, health_center_id, quantity=1):
    """Reserve stock for a freshly created appointment and link the two."""
    lot, qty = reserve_dose_for_health_center(
        appointment.vaccine_id,
        health_center_id,
        quantity=quantity,
        appointment_date=appointment.scheduled_for,
    )
    return StockReservation.objects.create(appointment=appointment, lot=lot, quantity=qty)


def release_reservation_for_appointment(appointment_id, consume=False):
    """
    Drop the reservation held by an appointment. Without ``consume`` the
    doses go back to the lot; with it they stay spent.

    A missing reservation is a no-op and returns None.
    """
    if not appointment_id:
        return None

    reservation = (
        StockReservation.objects
        .select_related('lot')
        .filter(appointment_id=appointment_id)
        .first()
    )
    if reservation is None:
        return None

    if not consume:
        release_dose_to_lot(reservation.lot_id, reservation.quantity)

    reservation.delete()
    logger.info(
        f"Reservation for appointment {appointment_id} on lot {reservation.lot_id} "
        f"{'consumed' if consume else 'released'} ({reservation.quantity})"
    )
    return reservation


def consume_lots(vaccine_id, owner_type, owner_id, quantity):
    """
    Draw ``quantity`` doses from an owner's valid lots, earliest expiration
    first. Returns the per-lot allocations.
    """
    qty = ensure_positive_integer(quantity, "The requested quantity")

    lots = (
        StockLot.objects
        .select_for_update()
        .filter(
            vaccine_id=vaccine_id,
            owner_type=owner_type,
            owner_id=normalize_owner_id(owner_type, owner_id),
            status=StockLot.STATUS_VALID,
            remaining_quantity__gt=0,
        )
        .order_by('expiration', 'id')
    )

    available = sum(lot.remaining_quantity for lot in lots)
    if available < qty:
        raise ResourceExhausted("Insufficient quantity in the available lots for this stock")

    remaining = qty
    allocations = []
    for lot in lots:
        if remaining <= 0:
            break
        take = min(remaining, lot.remaining_quantity)
        StockLot.objects.filter(pk=lot.pk).update(remaining_quantity=F('remaining_quantity') - take)
        allocations.append({
            'lot_id': lot.pk,
            'quantity': take,
            'expiration': lot.expiration,
            'status': lot.status,
        })
        remaining -= take

    return allocations


def refresh_expired_lots(today=None):
    """Flag valid or pending lots whose expiration date has passed."""
    today = today or timezone.localdate()
    expired = list(
        StockLot.objects.filter(
            status__in=[StockLot.STATUS_VALID, StockLot.STATUS_PENDING],
            expiration__lte=today,
        )
    )
    if not expired:
        return []

    StockLot.objects.filter(pk__in=[lot.pk for lot in expired]).update(status=StockLot.STATUS_EXPIRED)
    for lot in expired:
        lot.status = StockLot.STATUS_EXPIRED

    logger.info(f"{len(expired)} lot(s) marked as expired")
    return expired
