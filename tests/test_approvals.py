import asyncio
import json

from keeperjira.errors import CommandFailedError, KeeperApiError
from keeperjira.keeper import ApprovalDetailFetcher, extract_approval_data

APPROVAL = {"approval_uid": "abc_123", "approval_type": "Elevation", "justification": "install driver"}


class ScriptedKeeper:
    """Returns or raises the next scripted outcome for each executed command."""

    def __init__(self, outcomes):
        self.outcomes = list(outcomes)
        self.commands = []

    async def execute(self, command, filedata=None):
        self.commands.append(command)
        outcome = self.outcomes.pop(0)
        if isinstance(outcome, Exception):
            raise outcome
        return outcome


def test_extract_approval_data_shapes():
    assert extract_approval_data({"status": "success", "data": [APPROVAL]}) == APPROVAL
    assert extract_approval_data([APPROVAL]) == APPROVAL
    assert extract_approval_data({"result": {"data": [APPROVAL]}}) == APPROVAL
    assert extract_approval_data({"data": APPROVAL}) == APPROVAL
    assert extract_approval_data({"output": json.dumps([APPROVAL])}) == APPROVAL
    assert extract_approval_data({"output": "not json"}) is None
    assert extract_approval_data(None) is None


def test_fetcher_returns_details(fake_sleep):
    keeper = ScriptedKeeper([{"status": "success", "data": [APPROVAL]}])
    fetcher = ApprovalDetailFetcher(keeper, sleep=fake_sleep)

    assert asyncio.run(fetcher("abc_123")) == APPROVAL
    assert keeper.commands == ["pedm approval view abc_123 --format=json"]


def test_fetcher_syncs_down_when_approval_is_unknown(fake_sleep):
    keeper = ScriptedKeeper([
        CommandFailedError("Approval abc_123 does not exist"),
        {"status": "success"},
        {"status": "success", "data": [APPROVAL]},
    ])
    fetcher = ApprovalDetailFetcher(keeper, sync_delay_seconds=2.0, sleep=fake_sleep)

    assert asyncio.run(fetcher("abc_123")) == APPROVAL
    assert keeper.commands == [
        "pedm approval view abc_123 --format=json",
        "pedm sync-down",
        "pedm approval view abc_123 --format=json",
    ]
    assert fake_sleep.calls == [2.0]


def test_fetcher_gives_up_after_one_sync(fake_sleep):
    keeper = ScriptedKeeper([
        CommandFailedError("Approval abc_123 does not exist"),
        {"status": "success"},
        CommandFailedError("Approval abc_123 does not exist"),
    ])
    fetcher = ApprovalDetailFetcher(keeper, sleep=fake_sleep)

    assert asyncio.run(fetcher("abc_123")) is None
    assert len(keeper.commands) == 3


def test_fetcher_returns_none_on_other_errors(fake_sleep):
    keeper = ScriptedKeeper([KeeperApiError("Keeper API status check error: 500")])
    fetcher = ApprovalDetailFetcher(keeper, sleep=fake_sleep)

    assert asyncio.run(fetcher("abc_123")) is None
    assert len(keeper.commands) == 1


def test_fetcher_refuses_unsafe_uids(fake_sleep):
    keeper = ScriptedKeeper([])
    fetcher = ApprovalDetailFetcher(keeper, sleep=fake_sleep)

    assert asyncio.run(fetcher("abc; rm -rf /")) is None
    assert keeper.commands == []
