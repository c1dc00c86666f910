"""Bound the accumulated story history to a prompt-safe size."""

DEFAULT_BUDGET = 800_000  # ~200k tokens at ~4 chars/token
DEFAULT_BREAK_WINDOW = 5_000
PARAGRAPH_BREAK = "\n\n"
CONDENSED_MARKER = "[...Earliest context condensed for memory efficiency...]\n\n"


def bound_context(
    full_history: str,
    budget: int = DEFAULT_BUDGET,
    break_window: int = DEFAULT_BREAK_WINDOW,
) -> str:
    """Keep the most recent ``budget`` characters, marking the elision.

    When a paragraph break exists in the first ``break_window`` characters of
    the kept tail, the text resumes right after it so no sentence is cut.
    The result is at most ``budget + len(CONDENSED_MARKER)`` long, and
    re-bounding the output returns it unchanged.
    """
    if full_history is None:
        return ""
    if len(full_history) <= budget:
        return full_history
    if (full_history.startswith(CONDENSED_MARKER)
            and len(full_history) - len(CONDENSED_MARKER) <= budget):
        return full_history

    retained = full_history[-budget:]
    cut = retained.find(PARAGRAPH_BREAK, 0, break_window)
    if cut != -1:
        retained = retained[cut + len(PARAGRAPH_BREAK):]
    return CONDENSED_MARKER + retained
