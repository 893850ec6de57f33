"""
Naira Payroll — Nigerian payroll core for the operations suite
Wiring only; calculations live in payroll_engine.py, lifecycle in payroll_workflow.py
"""
import logging

from config import settings, Settings
from db import InMemoryPayrollStore, SqlPayrollStore
from payroll_workflow import PayrollWorkflow

# ── Logging ─────────────────────────────────────────────────────────────────

LOG_FORMAT = '{"time":"%(asctime)s","level":"%(levelname)s","msg":"%(message)s"}'

logger = logging.getLogger("naira_payroll")


def configure_logging(config: Settings = settings) -> None:
    logging.basicConfig(
        level=logging.DEBUG if config.debug else config.log_level.upper(),
        format=LOG_FORMAT,
    )


# ── Wiring ──────────────────────────────────────────────────────────────────

def build_store(config: Settings = settings):
    if config.payroll_store == "memory":
        logger.info("Using in-memory payroll store")
        return InMemoryPayrollStore()
    logger.info("Using SQL payroll store")
    return SqlPayrollStore(config.database_url, echo=config.debug)


def build_workflow(config: Settings = settings) -> PayrollWorkflow:
    return PayrollWorkflow(build_store(config))


if __name__ == "__main__":
    configure_logging()
    workflow = build_workflow()
    for submission in workflow.list_submissions():
        logger.info("%s %s: %s employees, net %s",
                    submission.period_label, submission.status.value,
                    len(submission.employees), submission.total_net)
