"""
Parent and agent notifications for appointment events.

Everything here runs after the engine's transaction has committed: failures
are logged and never reach the caller.
"""
import logging
import threading

from django.conf import settings
from django.core.mail import send_mail
from django.db import connection, transaction

from ..models import Account, Child, Notification
from .push_notification_service import PushNotificationService

logger = logging.getLogger(__name__)


def _run_safely(func, *args, **kwargs):
    try:
        func(*args, **kwargs)
    except Exception as e:
        logger.error(f"[ASYNC] {func.__name__} failed: {e}")


def _run_in_thread(func, *args, **kwargs):
    """Thread target: the worker thread owns its database connection and closes it."""
    try:
        _run_safely(func, *args, **kwargs)
    finally:
        connection.close()


def run_after_commit(func, *args, **kwargs):
    """
    Run ``func`` once the surrounding transaction commits, in a background
    thread unless VACCINATION_ASYNC_NOTIFICATIONS is off.
    """
    def start():
        if getattr(settings, 'VACCINATION_ASYNC_NOTIFICATIONS', True):
            threading.Thread(target=_run_in_thread, args=(func, *args), kwargs=kwargs, daemon=True).start()
        else:
            _run_safely(func, *args, **kwargs)

    transaction.on_commit(start)


def _format_date(value):
    return value.strftime('%d/%m/%Y') if value else ''


def notify_parent(child_id, title, message, type='vaccination', data=None):
    """Store the in-app notification, then email and push the parent."""
    child = Child.objects.filter(pk=child_id).first()
    if child is None:
        logger.warning(f"[ASYNC] Notification '{title}' dropped: child {child_id} not found")
        return None

    notification = Notification.objects.create(child=child, title=title, message=message, type=type)

    # === Email notification ===
    if child.parent_email:
        try:
            send_mail(
                f"[VMS] {title} - {child.first_name}",
                f"Hello {child.parent_name or ''},\n\n{message}\n\nChild: {child.full_name}",
                settings.DEFAULT_FROM_EMAIL,
                [child.parent_email],
                fail_silently=False,
            )
            logger.info(f"[ASYNC] Email sent to {child.parent_email}")
        except Exception as email_error:
            logger.error(f"[ASYNC] Email failed for {child.parent_email}: {email_error}")

    # === Push notification ===
    parent_account = Account.objects.filter(email=child.parent_email).first() if child.parent_email else None
    if parent_account and parent_account.fcm_token:
        try:
            payload = {'type': type, 'child_id': child.id, 'notification_id': notification.id}
            payload.update(data or {})
            PushNotificationService.send_push_notification(
                token=parent_account.fcm_token,
                title=title,
                body=message,
                data=payload,
            )
        except Exception as push_error:
            logger.error(f"[ASYNC] Push failed for {child.parent_email}: {push_error}")
    else:
        logger.debug(f"[ASYNC] No FCM token found for parent of child {child.id}")

    return notification


def notify_vaccine_scheduled(child_id, vaccine_name, scheduled_for):
    return notify_parent(
        child_id,
        "Vaccine scheduled",
        f"The {vaccine_name} vaccine is scheduled for {_format_date(scheduled_for)}",
        type='vaccination',
        data={'vaccine_name': vaccine_name, 'scheduled_date': scheduled_for},
    )


def notify_vaccine_missed(child_id, vaccine_name, due_date):
    return notify_parent(
        child_id,
        "Vaccine missed",
        f"The {vaccine_name} vaccine was due on {_format_date(due_date)} and was not administered",
        type='vaccination',
        data={'vaccine_name': vaccine_name, 'due_date': due_date},
    )


def notify_appointment_updated(child_id, updates):
    """``updates`` is a list of ``(title, message)`` pairs."""
    return [
        notify_parent(child_id, title, message, type='appointment')
        for title, message in updates or []
    ]


def notify_appointment_cancelled(child_id, vaccine_name, scheduled_for):
    return notify_parent(
        child_id,
        "Appointment cancelled",
        f"The appointment for the {vaccine_name} vaccine on {_format_date(scheduled_for)} was cancelled.",
        type='appointment',
        data={'vaccine_name': vaccine_name, 'scheduled_date': scheduled_for},
    )


def notify_vaccine_completed(child_id, vaccine_name, dose, completed_at):
    return notify_parent(
        child_id,
        "Vaccine administered",
        f"Dose {dose} of the {vaccine_name} vaccine was administered on {_format_date(completed_at)}",
        type='vaccination',
        data={'vaccine_name': vaccine_name, 'dose': dose},
    )


def notify_health_center_agents(health_center_id, title, message, type, exclude_account_id=None):
    """Push a message to every active agent of a health center."""
    agents = Account.objects.filter(
        health_center_id=health_center_id,
        role=Account.ROLE_AGENT,
        is_active=True,
    ).exclude(fcm_token__isnull=True).exclude(fcm_token='')
    if exclude_account_id:
        agents = agents.exclude(pk=exclude_account_id)

    sent = 0
    for agent in agents:
        try:
            result = PushNotificationService.send_push_notification(
                token=agent.fcm_token,
                title=title,
                body=message,
                data={'type': type, 'health_center_id': health_center_id},
            )
            if result.get('success'):
                sent += 1
        except Exception as push_error:
            logger.error(f"[ASYNC] Agent push failed for {agent.email}: {push_error}")

    logger.info(f"[ASYNC] '{title}' pushed to {sent} agent(s) of health center {health_center_id}")
    return sent
