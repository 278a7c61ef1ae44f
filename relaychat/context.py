from __future__ import annotations

from typing import Any, Dict, List, Optional

from .store import ConversationLog


def build_messages(turns: List[Dict[str, Any]], question: str, preamble: str) -> List[Dict[str, str]]:
    """System preamble, then each prior turn as a user/assistant pair, then the new question.

    Turns are expected oldest-first. A turn side that is missing or empty is skipped.
    """
    messages: List[Dict[str, str]] = [{"role": "system", "content": preamble}]
    for turn in turns:
        if turn.get("question"):
            messages.append({"role": "user", "content": str(turn["question"])})
        if turn.get("answer"):
            messages.append({"role": "assistant", "content": str(turn["answer"])})
    messages.append({"role": "user", "content": question})
    return messages


def assemble_context(
    log: ConversationLog,
    user_id: Optional[str],
    question: str,
    preamble: str,
    recent_pairs: int,
) -> List[Dict[str, str]]:
    turns = log.recent_turns(user_id, recent_pairs)
    return build_messages(turns, question, preamble)
