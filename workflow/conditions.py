"""Conditional routing functions for the chapter step graph."""

from workflow.state import ChapterStepState


def route_after_load(state: ChapterStepState) -> str:
    """Stop early, finish the book, heal a half-applied step, or write the next chapter."""
    if state.get("outcome"):
        return "__end__"
    if state.get("index", 0) >= state.get("total_chapters", 0):
        return "finalize_book"
    if state.get("recovered", False):
        return "update_continuity"
    return "generate_chapter"


def route_after_generate(state: ChapterStepState) -> str:
    """Generation failed -> count the attempt, otherwise persist."""
    if state.get("error"):
        return "record_failure"
    return "persist_chapter"


def route_after_persist(state: ChapterStepState) -> str:
    """Another step already persisted this chapter -> stop."""
    if state.get("outcome"):
        return "__end__"
    return "update_continuity"


def route_after_advance(state: ChapterStepState) -> str:
    """Last chapter in -> finalize, otherwise the step is done."""
    if state.get("outcome") == "already_done":
        return "__end__"
    if state.get("index", 0) + 1 >= state.get("total_chapters", 0):
        return "finalize_book"
    return "__end__"
