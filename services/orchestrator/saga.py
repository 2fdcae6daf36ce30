import structlog

from shared.observability import ecomm_saga_compensation_total

logger = structlog.get_logger(__name__)


class SagaStep:
    def __init__(self, name, action, compensation=None):
        self.name = name
        self.action = action
        self.compensation = compensation


class SagaOrchestrator:
    def __init__(self, name: str = "saga"):
        self.name = name
        self.steps: list[SagaStep] = []

    def add_step(self, name: str, action, compensation=None):
        """Builder pattern to add a step and its rollback compensation."""
        self.steps.append(SagaStep(name, action, compensation))
        return self

    async def execute(self, ctx: dict):
        """Executes steps sequentially. Runs compensations of completed steps on any exception."""
        executed_steps = []
        current = None
        try:
            for step in self.steps:
                current = step
                await step.action(ctx)
                executed_steps.append(step)
            return ctx
        except Exception as exc:
            logger.error(
                "saga_step_failed",
                saga=self.name,
                step=current.name if current else None,
                error=str(exc),
                error_type=type(exc).__name__,
            )
            await self._rollback(executed_steps, ctx)
            raise

    async def _rollback(self, executed_steps: list, ctx: dict):
        """Executes compensations in reverse order. Wraps each in a try/except."""
        logger.info("saga_rollback_started", saga=self.name, completed_steps=[s.name for s in executed_steps])
        for step in reversed(executed_steps):
            if step.compensation is None:
                continue
            try:
                await step.compensation(ctx)
                ecomm_saga_compensation_total.labels(step_name=step.name).inc()
                logger.info("saga_compensation_succeeded", saga=self.name, step=step.name)
            except Exception as exc:
                # A failing compensation must not block the others
                logger.critical(
                    "saga_compensation_failed",
                    saga=self.name,
                    step=step.name,
                    error=str(exc),
                    manual_intervention=True,
                )
