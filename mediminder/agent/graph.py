# mediminder/agent/graph.py
from langgraph.graph import START, END, StateGraph

from mediminder.agent.nodes import extract_node, make_schedule_node, review_node
from mediminder.agent.state import ReviewState
from mediminder.services.reminders import ReminderOrchestrator

def build_review_graph(orchestrator: ReminderOrchestrator, checkpointer):
    """extract -> review (interrupt) -> schedule, persisted per review_id thread."""
    builder = StateGraph(ReviewState)

    builder.add_node("extract", extract_node)
    builder.add_node("review", review_node)
    builder.add_node("schedule", make_schedule_node(orchestrator))

    builder.add_edge(START, "extract")
    builder.add_edge("extract", "review")
    builder.add_edge("review", "schedule")
    builder.add_edge("schedule", END)

    return builder.compile(checkpointer=checkpointer)

def thread_config(review_id: str):
    return {"configurable": {"thread_id": review_id}}
