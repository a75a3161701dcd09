"""Tests for DealMemoSender assignment notifications."""

from __future__ import annotations

import pytest

from src.app.deals.memo import DealMemoSender, build_assignment_notification
from src.app.deals.schemas import DealCreate, DealRead, PodTeamMember, TeamRole


async def _deal(repo, pod_team):
    return await repo.create_deal(
        DealCreate(
            name="Project Atlas",
            client="Atlas Software Inc",
            sector="Technology",
            value=250,
            lead=pod_team[0].name,
            pod_team=pod_team,
        )
    )


def _team():
    return [
        PodTeamMember(user_id="u-lead", name="Lena", role=TeamRole.LEAD),
        PodTeamMember(user_id="u-assoc", name="Adam", role=TeamRole.ASSOCIATE),
        PodTeamMember(user_id=None, name="External Counsel", role=TeamRole.ANALYST),
    ]


def test_notification_wording():
    deal = DealRead(
        id="d-1",
        name="Project Atlas",
        client="Atlas Software Inc",
        sector="Technology",
        value=12.5,
        lead="Lena",
    )
    member = PodTeamMember(user_id="u-1", name="Lena", role=TeamRole.LEAD)

    note = build_assignment_notification(deal, member)

    assert note.title == "New Deal Assignment: Project Atlas"
    assert note.message == (
        "You have been assigned to the Project Atlas deal as Lead. "
        "Client: Atlas Software Inc. Sector: Technology. Value: $12.5M."
    )
    assert note.type == "info"
    assert note.link == "/ceo/deals?dealId=d-1"


@pytest.mark.asyncio
async def test_notifies_registered_members_only(repo):
    deal = await _deal(repo, _team())

    sent = await DealMemoSender(repo).send_deal_memo(deal.id)

    assert sent == 2
    assert [n.user_id for n in repo.notifications] == ["u-lead", "u-assoc"]
    assert "as Associate" in repo.notifications[1].message
    assert "Value: $250M." in repo.notifications[0].message


@pytest.mark.asyncio
async def test_missing_deal_sends_nothing(repo):
    assert await DealMemoSender(repo).send_deal_memo("missing") == 0
    assert repo.notifications == []


@pytest.mark.asyncio
async def test_failed_notification_does_not_stop_the_rest(repo):
    deal = await _deal(repo, _team())
    original = repo.create_notification
    calls = 0

    async def flaky(data):
        nonlocal calls
        calls += 1
        if calls == 1:
            raise RuntimeError("insert failed")
        return await original(data)

    repo.create_notification = flaky

    sent = await DealMemoSender(repo).send_deal_memo(deal.id)

    assert sent == 1
    assert calls == 2
    assert [n.user_id for n in repo.notifications] == ["u-assoc"]


@pytest.mark.parametrize(
    ("value", "rendered"),
    [(250, "$250M"), (12.5, "$12.5M"), (1234567, "$1234567M"), (0, "$0M")],
)
def test_value_rendered_without_exponent(value, rendered):
    deal = DealRead(
        id="d-1", name="Project Atlas", client="Atlas", sector="Technology", value=value, lead="Lena"
    )
    member = PodTeamMember(user_id="u-1", name="Lena", role=TeamRole.LEAD)

    assert build_assignment_notification(deal, member).message.endswith(f"Value: {rendered}.")
