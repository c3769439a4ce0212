from .process_supervisor import ProcessSupervisor
from .state_machine import RequestStateMachine
from .wire import RequestEncoder, ResponseDemuxer, SourcePayload

__all__ = [
    "ProcessSupervisor",
    "RequestEncoder",
    "RequestStateMachine",
    "ResponseDemuxer",
    "SourcePayload",
]
