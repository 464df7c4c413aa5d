"""
Process-wide component container.

One Runtime owns the tracer, registry, alert notifier, background dispatcher
and the services built on them. The API creates one at startup; tests build
their own with a recording sender and an inline dispatcher.
"""

import logging
import time
from dataclasses import dataclass

from leadflow import config
from leadflow.agents.alerts import AlertNotifier
from leadflow.agents.batch import BatchJobManager
from leadflow.agents.email_queue_manager import EmailQueueManager
from leadflow.agents.mailer import EmailSender, build_email_sender
from leadflow.agents.marketing_automation import MarketingAutomationAgent
from leadflow.agents.offer_pathway_agent import OfferPathwayAgent
from leadflow.agents.registry import AgentRegistry
from leadflow.agents.tracer import TraceStore
from leadflow.intent.dispatcher import BackgroundDispatcher
from leadflow.intent.signals import SignalIngestion
from leadflow.intent.workflows import AgentWorkflowExecutor, ApprovalQueue, WorkflowRouter

logger = logging.getLogger("leadflow.runtime")


@dataclass
class Runtime:
    sender: EmailSender
    alerts: AlertNotifier
    tracer: TraceStore
    registry: AgentRegistry
    batch_manager: BatchJobManager
    dispatcher: BackgroundDispatcher
    signals: SignalIngestion
    router: WorkflowRouter
    approvals: ApprovalQueue

    def shutdown(self, wait: bool = True):
        self.dispatcher.shutdown(wait_for_pending=wait)


def register_default_agents(registry: AgentRegistry, sender: EmailSender, alerts: AlertNotifier,
                            sleep=time.sleep, retry_max: int = None,
                            retry_base_delay_ms: int = None):
    opts = {"alerts": alerts, "sleep": sleep, "retry_max": retry_max,
            "retry_base_delay_ms": retry_base_delay_ms}
    email_queue = registry.register(EmailQueueManager(sender, **opts))
    registry.register(MarketingAutomationAgent(email_queue, **opts))
    registry.register(OfferPathwayAgent(**opts))


def build_runtime(sender: EmailSender = None, dispatcher: BackgroundDispatcher = None,
                  admin_email: str = None, sleep=time.sleep, retry_max: int = None,
                  retry_base_delay_ms: int = None, max_traces: int = None,
                  max_batch_items: int = None) -> Runtime:
    """Wire up every component with the built-in agents registered."""
    sender = sender or build_email_sender()
    admin_email = config.ADMIN_EMAIL if admin_email is None else admin_email
    alerts = AlertNotifier(sender, admin_email=admin_email)
    tracer = TraceStore(max_traces=max_traces)
    registry = AgentRegistry()
    register_default_agents(registry, sender, alerts, sleep=sleep, retry_max=retry_max,
                            retry_base_delay_ms=retry_base_delay_ms)
    batch_manager = BatchJobManager(registry, tracer, alerts=alerts,
                                    max_items=max_batch_items, sleep=sleep)
    dispatcher = dispatcher or BackgroundDispatcher()

    runtime = Runtime(
        sender=sender,
        alerts=alerts,
        tracer=tracer,
        registry=registry,
        batch_manager=batch_manager,
        dispatcher=dispatcher,
        signals=SignalIngestion(dispatcher, sender=sender, admin_email=admin_email),
        router=WorkflowRouter(),
        approvals=ApprovalQueue(AgentWorkflowExecutor(batch_manager)),
    )
    logger.info("Runtime ready with agents: %s", ", ".join(registry.list()))
    return runtime
