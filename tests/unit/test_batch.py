"""
Unit tests for agent dispatch: BaseAgent.process, invoke_agent and BatchJobManager.
"""

import pytest

from leadflow.agents.alerts import AlertNotifier
from leadflow.agents.base import AgentResult, BaseAgent
from leadflow.agents.batch import BatchJobManager, invoke_agent
from leadflow.agents.registry import AgentRegistry
from leadflow.agents.tracer import TraceStore
from leadflow.exceptions import NotFoundError, TransientError, ValidationError


class EchoAgent(BaseAgent):
    name = "EchoAgent"
    description = "Echoes input; fails when asked"

    def run(self, payload):
        if payload.get("fail"):
            raise ValueError(f"bad item {payload.get('n')}")
        return {"n": payload.get("n")}


class DownAgent(BaseAgent):
    name = "DownAgent"
    critical = True

    def __init__(self, **kwargs):
        super().__init__(**kwargs)
        self.calls = 0

    def run(self, payload):
        self.calls += 1
        raise TransientError("upstream unavailable")


class FlakyPeerAgent(DownAgent):
    name = "FlakyPeerAgent"
    critical = False


class ExplodingAgent:
    """Not a BaseAgent: process() itself raises."""

    def process(self, payload):
        raise RuntimeError("process blew up")

    def get_metadata(self):
        return {"name": "ExplodingAgent"}


@pytest.fixture
def tracer():
    return TraceStore(max_traces=50)


@pytest.fixture
def alerts(sender, test_db):
    return AlertNotifier(sender, admin_email="ops@example.com")


@pytest.fixture
def manager(tracer, alerts):
    registry = AgentRegistry()
    registry.register(EchoAgent(sleep=lambda s: None))
    registry.register(DownAgent(alerts=alerts, retry_max=3, retry_base_delay_ms=10,
                                sleep=lambda s: None))
    registry.register(ExplodingAgent(), name="ExplodingAgent")
    return BatchJobManager(registry, tracer, alerts=alerts, max_items=1000,
                           sleep=lambda s: None)


class TestBaseAgentProcess:

    def test_success(self):
        result = EchoAgent().process({"n": 1})
        assert isinstance(result, AgentResult)
        assert result.success is True
        assert result.result == {"n": 1}

    def test_non_recoverable_failure_not_retried(self):
        result = EchoAgent().process({"fail": True, "n": 2})
        assert result.success is False
        assert "bad item 2" in result.error
        assert result.details["recoverable"] is False
        assert result.details["alerted"] is False

    def test_exhaustion_alerts_once(self, alerts, sender):
        agent = DownAgent(alerts=alerts, retry_max=3, sleep=lambda s: None)
        result = agent.process({})
        assert result.success is False
        assert agent.calls == 4
        assert result.details["alerted"] is True
        assert len(sender.sent) == 1
        assert "DownAgent" in sender.sent[0]["subject"]

    def test_non_critical_exhaustion_does_not_alert(self, alerts, sender):
        agent = FlakyPeerAgent(alerts=alerts, retry_max=2, sleep=lambda s: None)
        result = agent.process({})
        assert result.success is False
        assert agent.calls == 3
        assert result.details["recoverable"] is True
        assert result.details["alerted"] is False
        assert sender.sent == []

    def test_metadata(self):
        meta = DownAgent().get_metadata()
        assert meta["name"] == "DownAgent"
        assert meta["critical"] is True


class TestInvokeAgent:

    def test_records_trace(self, tracer):
        invoke_agent("EchoAgent", EchoAgent(), {"n": 1}, tracer)
        traces = tracer.get_recent_traces()
        assert len(traces) == 1
        assert traces[0]["agent_name"] == "EchoAgent"
        assert traces[0]["success"] is True

    def test_captures_process_exception(self, tracer):
        result = invoke_agent("ExplodingAgent", ExplodingAgent(), {}, tracer)
        assert result.success is False
        assert "blew up" in result.error
        assert tracer.get_metrics("ExplodingAgent")["failures"] == 1


class TestRunBatch:

    def test_results_in_input_order(self, manager):
        inputs = [{"n": i} for i in range(5)]
        out = manager.run_batch("EchoAgent", inputs)
        assert out["total"] == 5
        assert out["succeeded"] == 5
        assert [r["result"]["n"] for r in out["results"]] == [0, 1, 2, 3, 4]

    def test_failure_isolated(self, manager, sender):
        inputs = [{"n": 0}, {"n": 1, "fail": True}, {"n": 2}]
        out = manager.run_batch("EchoAgent", inputs)
        assert out["total"] == 3
        assert out["succeeded"] == 2
        assert out["failed"] == 1
        assert [r["success"] for r in out["results"]] == [True, False, True]
        assert out["results"][2]["result"] == {"n": 2}
        assert len(sender.sent) == 1

    def test_exhausted_item_not_alerted_twice(self, manager, sender):
        out = manager.run_batch("DownAgent", [{}])
        assert out["failed"] == 1
        assert len(sender.sent) == 1

    def test_exception_from_process_becomes_result(self, manager):
        out = manager.run_batch("ExplodingAgent", [{}, {}])
        assert out["failed"] == 2
        assert out["total"] == 2

    @pytest.mark.parametrize("inputs", [[], "not a list", {"n": 1}, None])
    def test_rejects_bad_inputs(self, manager, inputs):
        with pytest.raises(ValidationError):
            manager.run_batch("EchoAgent", inputs)

    def test_bounds(self, manager):
        assert manager.run_batch("EchoAgent", [{"n": 1}])["total"] == 1
        assert manager.run_batch("EchoAgent", [{"n": i} for i in range(1000)])["total"] == 1000
        with pytest.raises(ValidationError):
            manager.run_batch("EchoAgent", [{"n": i} for i in range(1001)])

    def test_unknown_agent(self, manager):
        with pytest.raises(NotFoundError):
            manager.run_batch("Nobody", [{}])
        with pytest.raises(NotFoundError):
            manager.run_single("Nobody", {})

    def test_item_delay(self, tracer):
        sleeps = []
        registry = AgentRegistry()
        registry.register(EchoAgent())
        manager = BatchJobManager(registry, tracer, sleep=sleeps.append)
        manager.run_batch("EchoAgent", [{"n": i} for i in range(3)], item_delay_ms=100)
        assert sleeps == [0.1, 0.1]

    def test_every_item_traced(self, manager, tracer):
        manager.run_batch("EchoAgent", [{"n": i} for i in range(4)])
        assert tracer.get_metrics("EchoAgent")["invocations"] == 4
