import json

import pytest

from flowforge.core import redis as ff_redis
from flowforge.services import notifications


class FakeRedis:
    def __init__(self, fail=False):
        self.published = []
        self.fail = fail

    async def publish(self, channel, message):
        if self.fail:
            raise ConnectionError("redis down")
        self.published.append((channel, json.loads(message)))
        return 1


@pytest.fixture
def fake_redis(monkeypatch: pytest.MonkeyPatch):
    client = FakeRedis()
    monkeypatch.setattr(ff_redis, "_enabled", lambda: True)
    monkeypatch.setattr(ff_redis, "_redis_client", client)
    return client


async def test_redis_off_is_a_quiet_no_op():
    assert await ff_redis.publish("campaign:1", "anything") is False


async def test_campaign_owner_event(fake_redis):
    assert await notifications.notify_campaign_owner("camp-1", "asg-9", "Dana") is True

    channel, message = fake_redis.published[0]
    assert channel == "campaign:camp-1"
    assert message["type"] == "assessment.session_completed"
    assert message["sent_at"]
    assert message["data"]["stakeholder_name"] == "Dana"
    assert message["data"]["dashboard_url"].endswith("/dashboard/campaigns/camp-1")


async def test_tenant_owner_event_carries_results(fake_redis):
    results = {"default_archetype": "anchor", "is_aligned": True}
    await notifications.notify_tenant_owner("tenant-1", "sess-1", results)

    channel, message = fake_redis.published[0]
    assert channel == "tenant:tenant-1"
    assert message["data"]["default_archetype"] == "anchor"
    assert message["data"]["assessment_type"] == "Leadership Archetype"


async def test_education_without_campaign_is_skipped(fake_redis):
    assert await notifications.notify_education_admin(None, "school-1", "student", "student_wellbeing") is False
    assert fake_redis.published == []


async def test_publish_failure_is_reported_not_raised(monkeypatch: pytest.MonkeyPatch):
    monkeypatch.setattr(ff_redis, "_enabled", lambda: True)
    monkeypatch.setattr(ff_redis, "_redis_client", FakeRedis(fail=True))

    assert await notifications.notify_safeguarding_alert("camp-1", "alert-1", "self_harm") is False
