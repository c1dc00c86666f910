"""Conditional routing functions for the generation cycle graph."""

from workflow.state import CycleState


def route_after_prompt(state: CycleState) -> str:
    """Route after prompt construction: draft, or bail out on error."""
    if state.get("error"):
        return "handle_error"
    return "draft"


def route_after_draft(state: CycleState) -> str:
    """Route after drafting: critique when auto-critique applies, else commit.

    Auto-critique never runs on the opening chapter.
    """
    if state.get("error"):
        return "handle_error"
    config = state.get("config")
    if config is not None and config.auto_critique and not state.get("is_first", False):
        return "critique"
    return "commit_chapter"


def route_after_critique(state: CycleState) -> str:
    """Route after critique: polish only when issues were found."""
    if state.get("critique_points"):
        return "polish"
    return "commit_chapter"


def route_after_commit(state: CycleState) -> str:
    """Route after commit: knowledge update runs only when auto-lore is on."""
    config = state.get("config")
    if config is not None and config.auto_lore:
        return "update_knowledge"
    return "offer_choices"
