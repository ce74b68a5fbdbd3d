"""
Tests for the event bus and the logging presentation sink.
"""
import logging

import pytest

from bus.event_bus import EventBus
from bus.sink import LoggingSink, NullSink
from models.events import ClassifiedEvent, EventKind, Heartbeat, ReactionRequest, ReactionResult, ReactionOutcome


def make_request(sig="sigTrigger"):
    return ReactionRequest(trigger_signature=sig, value_sol=0.5, asset="Mint1111")


class TestEventBus:

    @pytest.mark.asyncio
    async def test_publish_then_consume(self):
        bus = EventBus()

        assert bus.publish_reaction_request(make_request()) is True
        request = await bus.reaction_requests.get()

        assert request.trigger_signature == "sigTrigger"

    def test_full_queue_drops(self, caplog):
        bus = EventBus(reaction_queue_size=1)
        bus.publish_reaction_request(make_request("first"))

        with caplog.at_level(logging.ERROR):
            accepted = bus.publish_reaction_request(make_request("second"))

        assert accepted is False
        assert bus.reaction_requests.qsize() == 1
        assert "DROPPED" in caplog.text


class TestLoggingSink:

    def test_buy_logged_at_info(self, caplog):
        sink = LoggingSink()
        event = ClassifiedEvent("sigBuy12345", EventKind.BUY, 0.5, "BUY sigBuy12...: 0.5000 SOL", attributed=True)

        with caplog.at_level(logging.INFO, logger="sink"):
            sink.emit_event(event)

        assert "BUY sigBuy12" in caplog.text

    def test_failed_reaction_logged_as_warning(self, caplog):
        sink = LoggingSink()
        result = ReactionResult(outcome=ReactionOutcome.FAILED, amount=10, error="simulation failed")

        with caplog.at_level(logging.INFO, logger="sink"):
            sink.emit_reaction_result(result)

        assert caplog.records[-1].levelno == logging.WARNING
        assert "simulation failed" in caplog.text

    def test_every_notice_accepted(self):
        for sink in (NullSink(), LoggingSink()):
            sink.emit_heartbeat(Heartbeat(asset=None, state="idle", seen_count=0, endpoint="rpc.example.com"))
            sink.emit_reaction_triggered(make_request())
            sink.emit_reaction_result(ReactionResult.dropped(0, "nothing to sell"))
            sink.emit_status("running", "Monitoring", target_token="Mint1111")
