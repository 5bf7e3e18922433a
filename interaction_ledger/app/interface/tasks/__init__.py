from __future__ import annotations

from collections.abc import Awaitable, Callable
from typing import Any

from .ledger.create_tables_task import create_ledger_tables_task as ledger__create_tables_task
from .ledger.ingest_interactions_task import ingest_interactions_task as ledger__ingest_interactions_task
from .ledger.query_interactions_task import query_interactions_task as ledger__query_interactions_task
from .ledger.query_interactions_task import chain_summary_task as ledger__chain_summary_task
from .ledger.revisions_task import supersede_interaction_task as ledger__supersede_interaction_task
from .ledger.revisions_task import list_revisions_task as ledger__list_revisions_task

TaskFn = Callable[..., Awaitable[Any]]

TASKS: dict[str, TaskFn] = {
    "ledger__create_tables_task": ledger__create_tables_task,
    "ledger__ingest_interactions_task": ledger__ingest_interactions_task,
    "ledger__query_interactions_task": ledger__query_interactions_task,
    "ledger__chain_summary_task": ledger__chain_summary_task,
    "ledger__supersede_interaction_task": ledger__supersede_interaction_task,
    "ledger__list_revisions_task": ledger__list_revisions_task,
}
