from typing import Optional

from teto_agent.domain.models.conversation_state import StatePatch, TurnState


class GapDetector:
    """Treats a thread as a new topic after a long silence"""

    def __init__(self, threshold_ms: int):
        self.threshold_ms = threshold_ms

    def elapsed_ms(self, state: TurnState, now_ms: int) -> Optional[int]:
        if state.last_message_timestamp is None:
            return None
        return now_ms - state.last_message_timestamp

    def is_stale(self, state: TurnState, now_ms: int) -> bool:
        elapsed = self.elapsed_ms(state, now_ms)
        return elapsed is not None and elapsed > self.threshold_ms

    def reset(self, state: TurnState, now_ms: int) -> StatePatch:
        """Drop everything but the newly arrived message and the summary"""
        stale = [m.id for m in state.messages[:-1] if m.id]
        return StatePatch(remove_ids=stale, summary="", last_message_timestamp=now_ms)
