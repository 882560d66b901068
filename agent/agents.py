"""
Agents — The concrete agents of the support desk.

- GeneralAssistantAgent (general-assistant): greetings and general questions
- ArtworkAgent (artwork-analyzer): print size / DPI maths and artwork know-how
- TaskManagerAgent (task-manager): task creation, queries and team workload

Session metadata keys written by each agent are listed in its docstring.
"""

import logging
from typing import List, Optional

from agent.constraints import Constraint, artwork_constraints, task_manager_constraints
from agent.handlers import (
    CalculationHandler,
    GreetingHandler,
    HowToHandler,
    InformationHandler,
)
from agent.models import Intent, IntentType, Session
from agent.orchestrator import (
    AgentOrchestrator,
    ContextMarker,
    parse_json_object,
    parse_token,
)
from agent.task_handlers import (
    TaskCreationHandler,
    TaskManagerGreetingHandler,
    TaskQueryHandler,
    WorkloadAnalysisHandler,
)

logger = logging.getLogger(__name__)


class GeneralAssistantAgent(AgentOrchestrator):
    """Front-desk assistant. Owns greeting and unknown intents."""

    agent_id = "general-assistant"
    name = "General Assistant"
    description = "Answers general questions about the support desk"
    system_prompt = """You are the support desk's general assistant.

RULES:
1. Rely on the knowledge base context when it is provided. If something is not there, say so honestly and offer to pass the question to a staff member.
2. NEVER invent data, figures or names.
3. Be concise but complete. If the question is ambiguous, ask for clarification instead of refusing.
4. Do not open with a greeting; the user is already in the conversation."""

    OWNED_INTENTS = {IntentType.GREETING, IntentType.UNKNOWN, IntentType.INFORMATION}

    def build_handlers(self):
        return [GreetingHandler(), InformationHandler()]

    def can_handle(self, intent: Intent) -> bool:
        return intent.type in self.OWNED_INTENTS

    def get_capabilities(self) -> List[str]:
        return ["greeting", "general_questions", "knowledge_lookup"]


class ArtworkAgent(AgentOrchestrator):
    """Artwork and print specialist.

    Session metadata:
    - ``artworkData``: JSON object from ``[Artwork Context: {...}]``
      (e.g. width, height, dpi, filename); used by the calculation handler
    """

    agent_id = "artwork-analyzer"
    name = "Artwork Analyzer"
    description = "Print size, DPI and artwork preparation assistant"
    system_prompt = """You are the artwork and printing assistant of the support desk.

Message length rules:
- Keep replies to 2-3 short sentences.
- Only answer what the user actually asked, then end with a question to keep the conversation going.
- Wait for a specific question before giving technical details.

Conversation rules:
- Read the full conversation history before replying; "it", "that" or "this size" refer to what was just discussed.
- Never ask for information you already have.

CONSTRAINTS:
- NEVER discuss pricing, discounts or refunds; those are handled by the sales team.
- ALWAYS give accurate technical information. If you don't know something, say so and offer to escalate."""

    OWNED_INTENTS = {IntentType.CALCULATION, IntentType.HOWTO, IntentType.INFORMATION}

    def build_handlers(self):
        return [CalculationHandler(), HowToHandler(), InformationHandler()]

    def build_constraints(self) -> List[Constraint]:
        return artwork_constraints()

    def build_context_markers(self) -> List[ContextMarker]:
        return [
            ContextMarker(
                label="Artwork Context",
                metadata_key="artworkData",
                parser=parse_json_object("Artwork Context"),
                payload_pattern=r"\{.*?\}",
            )
        ]

    def get_system_prompt(self, session: Session) -> str:
        artwork = session.metadata.get("artworkData")
        if not artwork:
            return self.system_prompt
        summary = ", ".join(f"{k}={v}" for k, v in sorted(artwork.items()))
        return f"{self.system_prompt}\n\nCURRENT ARTWORK: {summary}"

    def can_handle(self, intent: Intent) -> bool:
        return intent.type in self.OWNED_INTENTS

    def can_contribute(self, intent: Intent) -> bool:
        if intent.type == IntentType.CALCULATION:
            return True
        if intent.entities.get("dimensions") or intent.entities.get("dpi"):
            return True
        return intent.entities.get("domain") in ("printing", "artwork")

    def get_capabilities(self) -> List[str]:
        return [
            "dpi_calculation",
            "size_calculation",
            "quality_rating",
            "print_size_recommendation",
            "artwork_preparation",
            "file_requirements",
            "troubleshooting",
        ]


class TaskManagerAgent(AgentOrchestrator):
    """Task coordination assistant for staff.

    Session metadata:
    - ``currentTask``: task id (``TSK-123``) from ``[Task: TSK-123]``
    """

    agent_id = "task-manager"
    name = "Task Manager"
    description = "Helps staff create, track and distribute tasks"
    system_prompt = """You are the Task Manager assistant, helping staff manage tasks and projects.

Your role:
- Help staff create, update and track tasks
- Give insights on task status and team workload
- Suggest assignments based on availability

Communication style:
- Professional but friendly, concise and action-oriented
- Always ask for confirmation on important changes

Important rules:
- NEVER delete tasks; only staff can delete tasks
- ALWAYS confirm before assigning tasks to someone"""

    OWNED_INTENTS = {
        IntentType.GREETING,
        IntentType.TASK_CREATION,
        IntentType.TASK_QUERY,
        IntentType.WORKLOAD_ANALYSIS,
    }

    def build_handlers(self):
        return [
            TaskManagerGreetingHandler(),
            TaskCreationHandler(),
            TaskQueryHandler(),
            WorkloadAnalysisHandler(),
        ]

    def build_constraints(self) -> List[Constraint]:
        return task_manager_constraints()

    def build_context_markers(self) -> List[ContextMarker]:
        return [
            ContextMarker(
                label="Task",
                metadata_key="currentTask",
                parser=parse_token("Task", r"\b(TSK-\d+)\b"),
            )
        ]

    def get_system_prompt(self, session: Session) -> str:
        current_task = session.metadata.get("currentTask")
        if current_task:
            return f"{self.system_prompt}\n\nThe user is currently looking at task {current_task}."
        return self.system_prompt

    def can_handle(self, intent: Intent) -> bool:
        return intent.type in self.OWNED_INTENTS or self.router.select(intent) is not None

    def can_contribute(self, intent: Intent) -> bool:
        return intent.type in (IntentType.TASK_QUERY, IntentType.WORKLOAD_ANALYSIS) or bool(
            intent.entities.get("assignee") or intent.entities.get("deadline")
        )

    def get_capabilities(self) -> List[str]:
        return [
            "task_creation",
            "task_search",
            "task_status",
            "workload_analysis",
            "assignment_suggestions",
        ]

    async def get_current_task(self, session_id: str) -> Optional[str]:
        session = await self.sessions.get_session(session_id)
        if session is None:
            return None
        return session.metadata.get("currentTask")
