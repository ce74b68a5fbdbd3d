"""
Tests for the program-log stream message handling.
"""
import asyncio
import json
from unittest.mock import MagicMock

import pytest
from websockets.exceptions import InvalidMessage

from ledger.log_stream import LogStreamWatcher


@pytest.fixture
def on_activity():
    return MagicMock()


@pytest.fixture
def watcher(pool, on_activity):
    return LogStreamWatcher(pool, mention="CurveAccount111", on_activity=on_activity)


def notification(signature="sigLive", err=None):
    return json.dumps({
        "jsonrpc": "2.0",
        "method": "logsNotification",
        "params": {
            "subscription": 7,
            "result": {"context": {"slot": 1}, "value": {"signature": signature, "err": err, "logs": []}},
        },
    })


class TestHandleMessage:

    def test_notification_wakes_monitor(self, watcher, on_activity):
        watcher._handle_message(notification("sigLive"))

        on_activity.assert_called_once_with("sigLive")
        assert watcher.notifications == 1

    def test_failed_transaction_ignored(self, watcher, on_activity):
        watcher._handle_message(notification(err={"InstructionError": [0, "Custom"]}))

        on_activity.assert_not_called()

    @pytest.mark.parametrize("raw", [
        "not json",
        json.dumps({"jsonrpc": "2.0", "id": 1, "result": 7}),   # subscription ack
        json.dumps({"method": "logsNotification", "params": {}}),
        json.dumps([1, 2, 3]),
    ])
    def test_other_messages_ignored(self, watcher, on_activity, raw):
        watcher._handle_message(raw)

        on_activity.assert_not_called()
        assert watcher.notifications == 0


@pytest.fixture
def fast_watcher(watcher):
    watcher.INITIAL_BACKOFF_S = 0.001
    watcher.MAX_BACKOFF_S = 0.001
    return watcher


class TestReconnect:

    @pytest.mark.asyncio
    async def test_handshake_error_keeps_reconnecting(self, fast_watcher, monkeypatch):
        """A malformed handshake response must not end the stream task."""
        connect = MagicMock(side_effect=InvalidMessage("did not receive a valid HTTP response"))
        monkeypatch.setattr("ledger.log_stream.websockets.connect", connect)

        task = asyncio.create_task(fast_watcher.run())
        await asyncio.sleep(0.05)

        assert not task.done()
        assert connect.call_count >= 2
        task.cancel()
        await asyncio.gather(task, return_exceptions=True)

    @pytest.mark.asyncio
    async def test_failing_callback_keeps_reconnecting(self, fast_watcher, on_activity, monkeypatch):
        on_activity.side_effect = RuntimeError("consumer broke")

        class FakeSocket:
            async def __aenter__(self):
                return self

            async def __aexit__(self, *exc):
                return False

            async def send(self, message):
                pass

            def __aiter__(self):
                return self

            async def __anext__(self):
                await asyncio.sleep(0)
                return notification()

        connect = MagicMock(side_effect=lambda *a, **kw: FakeSocket())
        monkeypatch.setattr("ledger.log_stream.websockets.connect", connect)

        task = asyncio.create_task(fast_watcher.run())
        await asyncio.sleep(0.05)

        assert not task.done()
        assert connect.call_count >= 2
        task.cancel()
        await asyncio.gather(task, return_exceptions=True)

    @pytest.mark.asyncio
    async def test_repeated_failures_rotate_endpoint(self, fast_watcher, pool, clock, endpoints, monkeypatch):
        """Stream failures count against the pool and move it on once the cooldown has passed."""
        clock.advance(60)
        connect = MagicMock(side_effect=OSError("connection refused"))
        monkeypatch.setattr("ledger.log_stream.websockets.connect", connect)

        task = asyncio.create_task(fast_watcher.run())
        for _ in range(500):
            if connect.call_count >= 4:
                break
            await asyncio.sleep(0.001)
        task.cancel()
        await asyncio.gather(task, return_exceptions=True)

        assert pool.rotations == 1
        assert connect.call_args_list[3].args[0] == endpoints[1].ws_url
