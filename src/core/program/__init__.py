"""
Bat-speed training program.

Contains the protocol classifier, the phase state machine, schedule
projection and the service that persists state changes.
"""

from .classifier import ProtocolClassification, ProtocolKind, classify_protocol
from .locks import PlayerLockRegistry, PlayerLockTimeout
from .models import (
    PhaseId,
    PhaseType,
    ProgramSettingsUpdate,
    ProgramState,
    ProtocolInfo,
    SessionRecord,
)
from .schedule import ProgramConfig, ProgramSchedule, generate_program_schedule
from .service import ProgramService, ProgramStateNotFoundError
from .state_machine import (
    InvalidTransition,
    apply_program_settings,
    build_default_program_state,
    compute_next_program_state,
    request_maintenance_extension,
    reset_program_state,
    start_next_ramp_up,
)

__all__ = [
    "ProtocolClassification",
    "ProtocolKind",
    "classify_protocol",
    "PlayerLockRegistry",
    "PlayerLockTimeout",
    "PhaseId",
    "PhaseType",
    "ProgramSettingsUpdate",
    "ProgramState",
    "ProtocolInfo",
    "SessionRecord",
    "ProgramConfig",
    "ProgramSchedule",
    "generate_program_schedule",
    "ProgramService",
    "ProgramStateNotFoundError",
    "InvalidTransition",
    "apply_program_settings",
    "build_default_program_state",
    "compute_next_program_state",
    "request_maintenance_extension",
    "reset_program_state",
    "start_next_ramp_up",
]
