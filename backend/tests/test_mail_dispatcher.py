"""
Mail dispatcher failover and delivery error classification.
"""
import asyncio
from unittest.mock import MagicMock

import httpx
import pytest

from services.errors import (
    MailSendFailed,
    PermanentDeliveryError,
    TransientDeliveryError,
    is_transient_error,
)
from services.mail_dispatcher import (
    MailDispatcher,
    MailProvider,
    OutgoingMail,
    raise_for_delivery_status,
)


class FakeProvider(MailProvider):
    def __init__(self, name, priority, error=None, available=True, delay=0):
        self.name = name
        self.priority = priority
        self.error = error
        self._available = available
        self.delay = delay
        self.sent = []

    @property
    def available(self):
        return self._available

    async def send(self, mail):
        if self.delay:
            await asyncio.sleep(self.delay)
        if self.error is not None:
            raise self.error
        self.sent.append(mail)
        return f"{self.name}-id"


def make_mail():
    return OutgoingMail(to=["client@example.com"], subject="Hello", html="<p>Hi</p>")


@pytest.mark.asyncio
async def test_failover_to_next_provider():
    graph = FakeProvider("microsoft_graph", 1, error=RuntimeError("graph exploded"))
    sendgrid = FakeProvider("sendgrid", 2)
    dispatcher = MailDispatcher([sendgrid, graph])

    result = await dispatcher.send(make_mail())

    assert result.provider == "sendgrid"
    assert result.message_id == "sendgrid-id"
    assert len(sendgrid.sent) == 1


@pytest.mark.asyncio
async def test_providers_sorted_by_priority_and_filtered():
    providers = [
        FakeProvider("smtp", 4),
        FakeProvider("resend", 2),
        FakeProvider("sendgrid", 2),
        FakeProvider("microsoft_graph", 1, available=False),
    ]
    dispatcher = MailDispatcher(providers)
    assert dispatcher.provider_names() == ["resend", "sendgrid", "smtp"]


@pytest.mark.asyncio
async def test_all_providers_failing_raises_with_last_error():
    permanent = PermanentDeliveryError("bad recipient", "sendgrid", 422)
    dispatcher = MailDispatcher([
        FakeProvider("microsoft_graph", 1, error=TransientDeliveryError("503", "microsoft_graph", 503)),
        FakeProvider("sendgrid", 2, error=permanent),
    ])

    with pytest.raises(MailSendFailed) as exc_info:
        await dispatcher.send(make_mail())

    assert exc_info.value.last_error is permanent
    assert exc_info.value.attempted == ["microsoft_graph", "sendgrid"]
    assert exc_info.value.transient is False


@pytest.mark.asyncio
async def test_no_providers_configured():
    with pytest.raises(MailSendFailed) as exc_info:
        await MailDispatcher([]).send(make_mail())
    assert exc_info.value.attempted == []
    assert "no mail provider configured" in str(exc_info.value)


@pytest.mark.asyncio
async def test_slow_provider_times_out_and_fails_over():
    slow = FakeProvider("microsoft_graph", 1, delay=1)
    fast = FakeProvider("sendgrid", 2)
    dispatcher = MailDispatcher([slow, fast], timeout=0.01)

    result = await dispatcher.send(make_mail())
    assert result.provider == "sendgrid"


def test_http_status_mapping():
    def response(code):
        resp = MagicMock(spec=httpx.Response)
        resp.status_code = code
        resp.text = "error body"
        return resp

    raise_for_delivery_status("sendgrid", response(202))
    with pytest.raises(TransientDeliveryError):
        raise_for_delivery_status("sendgrid", response(503))
    with pytest.raises(TransientDeliveryError):
        raise_for_delivery_status("sendgrid", response(429))
    with pytest.raises(PermanentDeliveryError):
        raise_for_delivery_status("sendgrid", response(401))


def test_is_transient_error():
    assert is_transient_error(TransientDeliveryError("x"))
    assert not is_transient_error(PermanentDeliveryError("x"))
    assert is_transient_error(Exception("Connection reset by peer"))
    assert is_transient_error(Exception("something odd"))

    client_error = Exception("rejected")
    client_error.status_code = 422
    assert not is_transient_error(client_error)

    throttled = Exception("slow down")
    throttled.status_code = 429
    assert is_transient_error(throttled)
