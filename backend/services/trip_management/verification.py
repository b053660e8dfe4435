"""
OTP + token gating for trip start and trip end.

initiate_* stores a challenge bound to the submitted evidence, e-mails the
OTP to the customer and hands the bearer token to the driver's device.
verify_* redeems the challenge exactly once and applies the bound evidence.

Only a SHA-256 digest of the token is stored. A replayed token+OTP fails with
ChallengeExpiredError so the device can tell a replay from a typo.
"""

import hashlib
import logging
import secrets
from dataclasses import dataclass
from datetime import datetime

from django.conf import settings
from django.db import transaction
from django.utils import timezone
from django.utils.crypto import constant_time_compare, get_random_string
from django.utils.module_loading import import_string

from activity.models import ActivityAction
from trips.models import ChallengePurpose, PaymentStatus, TripStatus, VerificationChallenge
from services.alerts import log_activity
from realtime.notifications import notify_trip_event
from .exceptions import (
    ChallengeExpiredError,
    ChallengeNotFoundError,
    InvalidOtpError,
    InvalidStateError,
    TripValidationError,
    UnauthorizedError,
)
from .state_machine import STARTABLE_STATUSES, guarded_update, load_trip, require_status
from .trip_lifecycle import (
    TripResult,
    ensure_assigned_driver,
    complete_trip,
    compute_trip_fare,
    parse_decimal,
    parse_when,
)

logger = logging.getLogger(__name__)

START_EVIDENCE_FIELDS = ('odometer_image', 'car_front_image', 'car_back_image', 'driver_selfie')
END_EVIDENCE_FIELDS = ('odometer_image', 'car_front_image', 'car_back_image')


@dataclass
class ChallengeTicket:
    """What the driver's device gets back from initiate_start / initiate_end."""
    trip_id: int
    purpose: str
    token: str
    expires_at: datetime


def hash_token(token) -> str:
    return hashlib.sha256(str(token).encode('utf-8')).hexdigest()


def generate_otp() -> str:
    length = settings.TRIP_VERIFICATION.get('OTP_LENGTH', 4)
    return get_random_string(length, allowed_chars='0123456789')


def get_otp_sender():
    path = getattr(settings, 'TRIP_OTP_SENDER', 'services.trip_management.otp_delivery.send_otp')
    return import_string(path)


def _collect_evidence(evidence, required):
    missing = [name for name in required if not evidence.get(name)]
    if missing:
        raise TripValidationError(f"Missing evidence: {', '.join(missing)}")
    return {name: str(evidence[name]) for name in required}


def issue_challenge(trip, purpose, odometer_value, evidence, reported_at) -> ChallengeTicket:
    """
    Create a challenge for `trip` and deliver its OTP. Any earlier unused
    challenge for the same purpose is retired. Must run inside the caller's
    transaction so a delivery failure rolls the challenge back.
    """
    now = timezone.now()
    VerificationChallenge.objects.filter(
        trip=trip,
        purpose=purpose,
        consumed_at__isnull=True,
    ).update(consumed_at=now)

    token = secrets.token_urlsafe(32)
    otp = generate_otp()
    challenge = VerificationChallenge.objects.create(
        trip=trip,
        purpose=purpose,
        token_digest=hash_token(token),
        otp=otp,
        expires_at=VerificationChallenge.default_expiry(now),
        odometer_value=odometer_value,
        evidence=evidence,
        reported_at=reported_at,
    )

    get_otp_sender()(trip.customer_email, otp, purpose=purpose, trip=trip)
    logger.info("Issued %s challenge %s for trip %s", purpose, challenge.pk, trip.pk)

    return ChallengeTicket(trip_id=trip.pk, purpose=purpose, token=token, expires_at=challenge.expires_at)


def check_challenge(trip, purpose, token, otp, now=None) -> VerificationChallenge:
    """
    Validate token+OTP for `trip` without consuming it.

    Raises:
        ChallengeNotFoundError: unknown token for this purpose
        UnauthorizedError: token belongs to another trip
        ChallengeExpiredError: already consumed or past expiry
        InvalidOtpError: OTP does not match
    """
    if not token:
        raise TripValidationError("token is required")
    if otp in (None, ""):
        raise TripValidationError("otp is required")

    now = now or timezone.now()
    challenge = (
        VerificationChallenge.objects.select_for_update()
        .filter(token_digest=hash_token(token), purpose=purpose)
        .first()
    )
    if challenge is None:
        raise ChallengeNotFoundError("Verification token not found")
    if challenge.trip_id != trip.pk:
        raise UnauthorizedError("Verification token does not belong to this trip")
    if challenge.is_consumed:
        raise ChallengeExpiredError("This code has already been used")
    if challenge.is_expired(now):
        raise ChallengeExpiredError("This code has expired, please request a new one")
    if not constant_time_compare(str(otp), challenge.otp):
        raise InvalidOtpError("Incorrect OTP")
    return challenge


def consume_challenge(challenge, now=None):
    """Mark used. Zero rows means a concurrent request redeemed it first."""
    now = now or timezone.now()
    rows = VerificationChallenge.objects.filter(
        pk=challenge.pk,
        consumed_at__isnull=True,
    ).update(consumed_at=now)
    if rows != 1:
        raise ChallengeExpiredError("This code has already been used")
    challenge.consumed_at = now
    return challenge


# ===================== Start =====================

@transaction.atomic
def initiate_start(trip_id, driver_id, odometer_value, start_time=None, **evidence) -> ChallengeTicket:
    """
    Record start evidence and send the start OTP to the customer.

    Evidence keywords: odometer_image, car_front_image, car_back_image,
    driver_selfie (opaque image URIs).
    """
    odometer = parse_decimal(odometer_value, 'odometer_value')
    bound = _collect_evidence(evidence, START_EVIDENCE_FIELDS)
    reported_at = parse_when(start_time, 'start_time') or timezone.now()

    trip = load_trip(trip_id, for_update=True)
    ensure_assigned_driver(trip, driver_id)
    require_status(trip, STARTABLE_STATUSES, "start")

    return issue_challenge(trip, ChallengePurpose.START, odometer, bound, reported_at)


@transaction.atomic
def verify_and_start(trip_id, driver_id, token, otp) -> TripResult:
    """Redeem the start challenge and move the trip to IN_PROGRESS."""
    trip = load_trip(trip_id, for_update=True)
    ensure_assigned_driver(trip, driver_id)

    now = timezone.now()
    challenge = check_challenge(trip, ChallengePurpose.START, token, otp, now)
    require_status(trip, STARTABLE_STATUSES, "start")
    consume_challenge(challenge, now)

    evidence = challenge.evidence or {}
    guarded_update(
        trip,
        STARTABLE_STATUSES,
        TripStatus.IN_PROGRESS,
        expected_driver_id=driver_id,
        start_odometer=challenge.odometer_value,
        odometer_start_image=evidence.get('odometer_image', ""),
        car_front_image=evidence.get('car_front_image', ""),
        car_back_image=evidence.get('car_back_image', ""),
        driver_selfie=evidence.get('driver_selfie', ""),
        start_time=challenge.reported_at,
        started_at=now,
    )

    log_activity(
        ActivityAction.TRIP_STARTED,
        trip=trip,
        driver_id=driver_id,
        description=f"Trip #{trip.pk} started",
        metadata={'start_odometer': challenge.odometer_value},
    )
    logger.info("Trip %s started by driver %s", trip.pk, driver_id)
    notify_trip_event('trip_started', trip, "Trip started")

    return TripResult(success=True, trip=trip, message="Trip started successfully")


# ===================== End =====================

@transaction.atomic
def initiate_end(trip_id, driver_id, odometer_value, end_time=None, **evidence) -> ChallengeTicket:
    """
    Record end evidence and send the end OTP to the customer.

    Evidence keywords: odometer_image, car_front_image, car_back_image.
    """
    odometer = parse_decimal(odometer_value, 'odometer_value')
    bound = _collect_evidence(evidence, END_EVIDENCE_FIELDS)
    reported_at = parse_when(end_time, 'end_time') or timezone.now()

    trip = load_trip(trip_id, for_update=True)
    ensure_assigned_driver(trip, driver_id)
    require_status(trip, {TripStatus.IN_PROGRESS}, "end")
    if trip.end_verified_at is not None:
        raise InvalidStateError("Trip end is already verified, collect payment to finish")
    if trip.start_odometer is not None and odometer < trip.start_odometer:
        raise TripValidationError("End odometer cannot be less than start odometer")

    return issue_challenge(trip, ChallengePurpose.END, odometer, bound, reported_at)


@transaction.atomic
def verify_and_end(trip_id, driver_id, token, otp, await_payment=False) -> TripResult:
    """
    Redeem the end challenge and price the trip from the bound odometer and
    the elapsed time.

    With await_payment the trip stays IN_PROGRESS with its fare stamped
    until collect_payment / verify_payment_and_end_trip. Otherwise it is
    completed now with payment PENDING.
    """
    trip = load_trip(trip_id, for_update=True)
    ensure_assigned_driver(trip, driver_id)

    now = timezone.now()
    challenge = check_challenge(trip, ChallengePurpose.END, token, otp, now)
    require_status(trip, {TripStatus.IN_PROGRESS}, "end")
    if trip.end_verified_at is not None:
        raise InvalidStateError("Trip end is already verified")
    consume_challenge(challenge, now)

    distance, duration, quote = compute_trip_fare(trip, challenge.odometer_value, challenge.reported_at)
    evidence = challenge.evidence or {}
    fields = dict(
        end_odometer=challenge.odometer_value,
        odometer_end_image=evidence.get('odometer_image', ""),
        car_end_front_image=evidence.get('car_front_image', ""),
        car_end_back_image=evidence.get('car_back_image', ""),
        end_time=challenge.reported_at,
        end_verified_at=now,
        distance_km=distance,
        duration_hours=duration,
        base_amount=quote.base_amount,
        extra_amount=quote.extra_amount,
    )

    if await_payment:
        guarded_update(
            trip,
            {TripStatus.IN_PROGRESS},
            TripStatus.IN_PROGRESS,
            expected_driver_id=driver_id,
            **fields,
        )
        logger.info("Trip %s end verified, awaiting payment of %s", trip.pk, trip.estimated_fare)
        notify_trip_event('trip_awaiting_payment', trip, "Collect payment to finish the trip",
                          {'amount_due': str(trip.estimated_fare)})
        return TripResult(
            success=True,
            trip=trip,
            message="Trip end verified. Collect payment to complete.",
            extra={'amount_due': trip.estimated_fare},
        )

    complete_trip(trip, expected_driver_id=driver_id, payment_status=PaymentStatus.PENDING, **fields)
    return TripResult(success=True, trip=trip, message="Trip completed successfully")
