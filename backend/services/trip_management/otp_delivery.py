"""Out-of-band OTP delivery to the customer."""

import logging
import smtplib

from django.conf import settings
from django.core.mail import send_mail

from .exceptions import OtpDeliveryError

logger = logging.getLogger(__name__)


def send_otp(destination, code, purpose='start', trip=None):
    """
    E-mail the OTP to the customer.

    Raises:
        OtpDeliveryError: no address on file, or the mail backend failed
    """
    if not destination:
        raise OtpDeliveryError("Customer has no e-mail address for OTP delivery")

    trip_ref = f" #{trip.pk}" if trip is not None else ""
    subject = f"Your code to {purpose} trip{trip_ref}"
    body = (
        f"Share this code with your driver to {purpose} the trip: {code}\n\n"
        "Do not share it with anyone else."
    )

    try:
        sent = send_mail(
            subject,
            body,
            getattr(settings, 'DEFAULT_FROM_EMAIL', None),
            [destination],
            fail_silently=False,
        )
    except (smtplib.SMTPException, OSError) as e:
        logger.exception("OTP e-mail to %s failed", destination)
        raise OtpDeliveryError(f"Could not send OTP: {e}")

    if not sent:
        raise OtpDeliveryError("Could not send OTP")
    logger.info("Sent %s OTP for trip%s", purpose, trip_ref)
