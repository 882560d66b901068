"""
Task Handlers — Handlers of the task-coordination assistant.

Priorities: greeting 100, task creation 90, task query 85, workload 80.
Creation, query and workload answers need live task data the runtime does
not own, so they defer to generation with whatever they extracted.
"""

import re
from typing import Any, Dict

from agent.handlers import BaseHandler, GreetingHandler, pick_greeting
from agent.models import Intent, IntentType, Resolved

TASK_CREATION_KEYWORDS = [
    "create task",
    "new task",
    "add task",
    "make a task",
    "create a task for",
]

TASK_QUERY_KEYWORDS = [
    "show tasks",
    "my tasks",
    "what tasks",
    "task status",
    "task list",
    "overdue tasks",
    "upcoming tasks",
    "pending tasks",
    "completed tasks",
    "who is working on",
    "what is the status of",
]

WORKLOAD_KEYWORDS = [
    "workload",
    "who is busy",
    "who is available",
    "team capacity",
    "who has time",
    "who can take",
    "distribute tasks",
    "balance workload",
]

_TASK_REF = re.compile(r"\bTSK-\d+\b", re.IGNORECASE)


def _mentions(message: str, keywords) -> bool:
    lower = (message or "").lower()
    return any(kw in lower for kw in keywords)


class TaskManagerGreetingHandler(GreetingHandler):
    name = "TaskManagerGreetingHandler"
    priority = 100

    greetings = [
        "Hi! I'm here to help you manage tasks and coordinate your team. What can I help you with?",
        "Hello! Ready to help you stay organized. What tasks are we working on today?",
        "Hey there! Let's tackle your tasks together. What do you need?",
    ]

    async def handle(self, message, intent, context):
        content = pick_greeting(self.greetings, context.session)
        current_task = context.metadata.get("currentTask")
        if current_task:
            content += (
                f"\n\nI see you're working on {current_task}. "
                "Would you like an update on this task?"
            )
        return Resolved(content=content, data={"currentTask": current_task} if current_task else {})


class TaskCreationHandler(BaseHandler):
    """Collects task details and lets the model phrase the proposal."""

    name = "TaskCreationHandler"
    priority = 90

    def can_handle(self, intent: Intent) -> bool:
        if intent.type == IntentType.TASK_CREATION:
            return True
        return intent.type == IntentType.UNKNOWN and _mentions(
            intent.original_message, TASK_CREATION_KEYWORDS
        )

    def extract_task_details(self, intent: Intent) -> Dict[str, Any]:
        details = {
            key: intent.entities[key]
            for key in ("priority", "deadline", "assignee")
            if intent.entities.get(key)
        }
        return details

    async def handle(self, message, intent, context):
        details = self.extract_task_details(intent)
        return self.defer(reason="task creation", action="create_task", **details)


class TaskQueryHandler(BaseHandler):
    name = "TaskQueryHandler"
    priority = 85

    def can_handle(self, intent: Intent) -> bool:
        if intent.type == IntentType.TASK_QUERY:
            return True
        return intent.type == IntentType.INFORMATION and _mentions(
            intent.original_message, TASK_QUERY_KEYWORDS
        )

    async def handle(self, message, intent, context):
        hints: Dict[str, Any] = {"action": "query_tasks"}
        refs = [ref.upper() for ref in _TASK_REF.findall(message)]
        if refs:
            hints["task_ids"] = refs
        elif context.metadata.get("currentTask"):
            hints["task_ids"] = [context.metadata["currentTask"]]
        return self.defer(reason="task query", **hints)


class WorkloadAnalysisHandler(BaseHandler):
    name = "WorkloadAnalysisHandler"
    priority = 80

    def can_handle(self, intent: Intent) -> bool:
        if intent.type == IntentType.WORKLOAD_ANALYSIS:
            return True
        return intent.type == IntentType.INFORMATION and _mentions(
            intent.original_message, WORKLOAD_KEYWORDS
        )

    async def handle(self, message, intent, context):
        return self.defer(reason="workload analysis", action="analyze_workload")
