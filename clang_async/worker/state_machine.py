"""Single-flight request gate for one worker stream.

The worker has no cancel primitive and no request ids, so at most one request
may be outstanding. A completion trigger that arrives while a request is in
flight marks that request as preempted: its frame is still consumed from the
stream but never surfaced.
"""

from __future__ import annotations

from enum import Enum

from .errors import ProtocolMisuse
from .types import EngineState, RequestMode


class TriggerAction(Enum):
    SEND = "send"
    PREEMPTED = "preempted"
    DELIVER_STORED = "deliver_stored"


class FrameAction(Enum):
    DELIVER = "deliver"
    DISCARD = "discard"
    UNSOLICITED = "unsolicited"


class RequestStateMachine:
    def __init__(self) -> None:
        self.state = EngineState.IDLE
        self.mode = RequestMode.NONE

    def is_idle(self) -> bool:
        return self.state is EngineState.IDLE

    def begin(self, mode: RequestMode) -> None:
        if mode is RequestMode.NONE:
            raise ValueError("Cannot begin a request without a response mode.")
        if self.state is not EngineState.IDLE:
            raise ProtocolMisuse(
                f"Cannot send a {mode.value} request while {self.state.value} "
                f"on a {self.mode.value} request."
            )
        self.state = EngineState.WAITING
        self.mode = mode

    def trigger(self) -> TriggerAction:
        """Completion trigger from the editor."""
        if self.state is EngineState.IDLE:
            self.begin(RequestMode.COMPLETION)
            return TriggerAction.SEND
        if self.state is EngineState.ACKNOWLEDGED:
            self._reset()
            return TriggerAction.DELIVER_STORED
        self.state = EngineState.PREEMPTED
        return TriggerAction.PREEMPTED

    def frame_complete(self) -> FrameAction:
        if self.state is EngineState.WAITING:
            self.state = EngineState.ACKNOWLEDGED
            return FrameAction.DELIVER
        if self.state is EngineState.PREEMPTED:
            self._reset()
            return FrameAction.DISCARD
        return FrameAction.UNSOLICITED

    def acknowledge(self) -> bool:
        """UI polled the delivered result; returns True when this reached IDLE."""
        if self.state is not EngineState.ACKNOWLEDGED:
            return False
        self._reset()
        return True

    def abort(self) -> RequestMode:
        """Worker died or timed out; returns the mode whose request was lost."""
        lost = RequestMode.NONE
        if self.state in {EngineState.WAITING, EngineState.PREEMPTED}:
            lost = self.mode
        self._reset()
        return lost

    def _reset(self) -> None:
        self.state = EngineState.IDLE
        self.mode = RequestMode.NONE
