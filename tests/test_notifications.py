from unittest.mock import patch

import pytest
from django.core import mail

from Vaccination.exceptions import ResourceExhausted
from Vaccination.models import Account, Notification
from Vaccination.services import appointments, notifications
from Vaccination.services.push_notification_service import PushNotificationService

from .helpers import in_days

pytestmark = pytest.mark.django_db


@pytest.fixture
def push():
    with patch.object(PushNotificationService, 'send_push_notification', return_value={'success': True}) as mocked:
        yield mocked


def test_parent_gets_a_stored_notification_and_an_email(child, push):
    notification = notifications.notify_parent(child.id, "Vaccine scheduled", "Penta on 12/03/2025")

    assert notification.title == "Vaccine scheduled"
    assert Notification.objects.filter(child=child).count() == 1
    assert len(mail.outbox) == 1
    assert mail.outbox[0].to == ["parent@vms.test"]
    assert "Penta on 12/03/2025" in mail.outbox[0].body
    push.assert_not_called()


def test_parent_with_a_device_gets_a_push(child, push):
    Account.objects.create(email="parent@vms.test", fcm_token="parent-device")

    notifications.notify_parent(child.id, "Vaccine missed", "Penta was not administered", data={'dose': 1})

    push.assert_called_once()
    kwargs = push.call_args.kwargs
    assert kwargs['token'] == "parent-device"
    assert kwargs['data']['dose'] == 1
    assert kwargs['data']['child_id'] == child.id


def test_unknown_child_is_dropped(push):
    assert notifications.notify_parent(4242, "Vaccine scheduled", "Penta") is None
    assert not Notification.objects.exists()


def test_agents_are_pushed_except_the_author(agent, colleague, health_center, push):
    sent = notifications.notify_health_center_agents(
        health_center.id, "Appointment updated", "Moved", 'APPOINTMENT_UPDATED', exclude_account_id=colleague.id,
    )

    # The author is the only agent with a device
    assert sent == 0
    push.assert_not_called()

    sent = notifications.notify_health_center_agents(health_center.id, "Appointment updated", "Moved", 'APPOINTMENT_UPDATED')
    assert sent == 1
    assert push.call_args.kwargs['token'] == "colleague-device-token"


def test_failures_after_commit_are_swallowed():
    def broken():
        raise RuntimeError("mail server down")

    with patch.object(notifications.logger, "error") as log_error:
        notifications._run_safely(broken)

    assert "mail server down" in log_error.call_args.args[0]


def test_schedule_notifies_only_after_commit(agent, child, stocked_vaccine, push, django_capture_on_commit_callbacks):
    with django_capture_on_commit_callbacks(execute=True) as callbacks:
        appointments.schedule_appointment(agent, child.id, stocked_vaccine.id, in_days(3))

    assert len(callbacks) == 1
    notification = Notification.objects.get(child=child)
    assert notification.title == "Vaccine scheduled"
    assert len(mail.outbox) == 1


def test_failed_schedule_notifies_nobody(agent, child, vaccine, push, django_capture_on_commit_callbacks):
    with django_capture_on_commit_callbacks(execute=True) as callbacks:
        with pytest.raises(ResourceExhausted):
            appointments.schedule_appointment(agent, child.id, vaccine.id, in_days(3))

    assert callbacks == []
    assert not Notification.objects.exists()
    assert mail.outbox == []


def test_cancel_notifies_parent_and_colleagues(agent, colleague, child, stocked_vaccine, push,
                                               django_capture_on_commit_callbacks):
    appointment, _ = appointments.schedule_appointment(agent, child.id, stocked_vaccine.id, in_days(3))

    with django_capture_on_commit_callbacks(execute=True):
        appointments.cancel_appointment(agent, appointment.id)

    assert Notification.objects.get(child=child).title == "Appointment cancelled"
    push.assert_called_once()
    assert push.call_args.kwargs['token'] == "colleague-device-token"


def test_reschedule_lists_each_change(agent, colleague, child, stocked_vaccine, push,
                                      django_capture_on_commit_callbacks):
    appointment, _ = appointments.schedule_appointment(agent, child.id, stocked_vaccine.id, in_days(3))

    with django_capture_on_commit_callbacks(execute=True):
        appointments.reschedule_appointment(agent, appointment.id, in_days(5), administered_by_id=colleague.id)

    titles = set(Notification.objects.filter(child=child).values_list('title', flat=True))
    assert titles == {"Appointment date changed", "Agent changed"}


def test_unconfigured_push_service_reports_failure(settings):
    settings.FIREBASE_KEY_PATH = None
    PushNotificationService._credentials = None

    result = PushNotificationService.send_push_notification("device", "Title", "Body")

    assert result['success'] is False
    assert PushNotificationService.is_configured()[0] is False


def test_push_payload_stringifies_data():
    message = PushNotificationService.build_message("device", "Title", "Body", {'child_id': 7, 'dose': 2})['message']

    assert message['token'] == "device"
    assert message['data'] == {'child_id': "7", 'dose': "2"}


def test_background_jobs_close_their_connection():
    def broken():
        raise RuntimeError("database gone")

    with patch.object(notifications, 'connection') as thread_connection:
        notifications._run_in_thread(broken)

    thread_connection.close.assert_called_once_with()


def test_async_jobs_start_a_thread_that_owns_its_connection(settings, django_capture_on_commit_callbacks):
    settings.VACCINATION_ASYNC_NOTIFICATIONS = True

    with patch.object(notifications.threading, 'Thread') as thread:
        with django_capture_on_commit_callbacks(execute=True):
            notifications.run_after_commit(notifications.notify_parent, 4242, "Title", "Body")

    assert thread.call_args.kwargs['target'] is notifications._run_in_thread
    thread.return_value.start.assert_called_once_with()
