"""Best-effort email notifications.

Every send here is fire-and-forget: failures are logged and counted, never
raised to the caller.
"""
import logging
from concurrent.futures import ThreadPoolExecutor, as_completed
from threading import Thread

from flask import current_app, render_template
from flask_mail import Message

from donorsync.extensions import mail

logger = logging.getLogger(__name__)

MAX_DONOR_NOTIFICATIONS = 20


def build_message(recipient, subject, template, **context):
    html = render_template(f'email/{template}', **context)
    return Message(subject=subject, recipients=[recipient], html=html)


def _send_one(app, message):
    with app.app_context():
        mail.send(message)


def _deliver(app, messages, label):
    sent = failed = 0
    with ThreadPoolExecutor(max_workers=len(messages)) as pool:
        futures = {pool.submit(_send_one, app, message): message for message in messages}
        for future in as_completed(futures):
            recipients = ', '.join(futures[future].recipients)
            try:
                future.result()
                sent += 1
            except Exception:
                failed += 1
                logger.warning('Failed to send %s email to %s', label, recipients, exc_info=True)
    logger.info('%s notifications: %d sent, %d failed', label, sent, failed)
    return sent, failed


def dispatch(messages, label):
    """Send messages concurrently without blocking the caller on the outcome.

    Returns the background thread, or None when nothing was started or
    NOTIFICATIONS_ASYNC is off and delivery already ran inline.
    """
    messages = [message for message in messages if message is not None]
    if not messages:
        return None
    app = current_app._get_current_object()
    if not app.config.get('NOTIFICATIONS_ASYNC', True):
        _deliver(app, messages, label)
        return None
    thread = Thread(target=_deliver, args=(app, messages, label), daemon=True)
    thread.start()
    return thread


def safe_message(recipient, subject, template, **context):
    """build_message that logs and returns None instead of raising."""
    if not recipient:
        return None
    try:
        return build_message(recipient, subject, template, **context)
    except Exception:
        logger.warning('Could not build %s email for %s', template, recipient, exc_info=True)
        return None


def notify_donors_of_request(blood_request, matches):
    """Email nearby donors about a new request; at most MAX_DONOR_NOTIFICATIONS of them."""
    messages = [
        safe_message(
            match.record.user.email,
            f'Urgent: {blood_request.blood_type} Blood Donation Needed',
            'donor_notification.html',
            donor=match.record, blood_request=blood_request,
            distance_km=round(match.distance_m / 1000, 1),
            frontend_url=current_app.config['FRONTEND_URL'],
        )
        for match in matches[:MAX_DONOR_NOTIFICATIONS]
        if match.record.user is not None
    ]
    return dispatch(messages, 'donor')


def send_request_confirmation(user, blood_request):
    message = safe_message(
        user.email, 'Blood Donation Request Confirmation', 'request_confirmation.html',
        user=user, blood_request=blood_request,
    )
    return dispatch([message], 'request confirmation')


def send_donor_registration_confirmation(user, donor):
    message = safe_message(
        user.email, 'Welcome to the DonorSync donor community', 'donor_registration.html',
        user=user, donor=donor,
    )
    return dispatch([message], 'donor registration')


def send_certificate_email(user, certificate):
    message = safe_message(
        user.email, 'Your Blood Donation Certificate is Ready!', 'certificate_issued.html',
        user=user, certificate=certificate,
    )
    return dispatch([message], 'certificate')


def send_email_verification(user, token):
    message = safe_message(
        user.email, 'Verify your DonorSync email address', 'verify_email.html',
        user=user, token=token, frontend_url=current_app.config['FRONTEND_URL'].rstrip('/'),
    )
    return dispatch([message], 'email verification')


def send_password_reset(user, token):
    message = safe_message(
        user.email, 'DonorSync password reset', 'password_reset.html',
        user=user, token=token, frontend_url=current_app.config['FRONTEND_URL'].rstrip('/'),
    )
    return dispatch([message], 'password reset')
