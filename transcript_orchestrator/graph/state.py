"""
LangGraph State Definitions

This module defines the state carried through the supervisor workflow graph:
- OrchestrationState: one analysis job, from planning to synthesis
"""

import operator
from typing import Annotated, Any, Dict, List, Optional, TypedDict


class OrchestrationState(TypedDict):
    """
    Graph state for one analysis job.

    The task registry itself lives in the supervisor; the graph state only
    carries ids, the routing decision and a serialized message trail.
    """

    # 1. Job identity and input
    job_id: str
    goal: str
    transcript: str

    # 2. Planning output
    subtask_ids: List[str]

    # 3. Routing
    next_team: str  # team node name or "FINISH"
    steps: int  # supervisor decisions taken so far

    # 4. Execution trail (appended by team nodes)
    messages: Annotated[List[Dict[str, Any]], operator.add]
    dispatched: Annotated[List[str], operator.add]

    # 5. Deliverable
    final_result: Optional[Dict[str, Any]]
