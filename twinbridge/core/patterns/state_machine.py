from enum import Enum, auto
from typing import Dict, Set
import logging

class BridgeState(Enum):
    INITIALIZING       = auto()
    CONNECTING_HUB     = auto()
    DISCOVERING_THINGS = auto()
    OPERATIONAL        = auto()
    ERROR              = auto()
    SHUTDOWN           = auto()

class BridgeStateMachine:
    """Tracks the bridge lifecycle and rejects out-of-order transitions."""

    def __init__(self, initial: BridgeState = BridgeState.INITIALIZING):
        self._state = initial
        self.logger = logging.getLogger(self.__class__.__name__)
        self._trans: Dict[BridgeState, Set[BridgeState]] = {
            BridgeState.INITIALIZING:       {BridgeState.CONNECTING_HUB, BridgeState.ERROR,
                                             BridgeState.SHUTDOWN},
            BridgeState.CONNECTING_HUB:     {BridgeState.DISCOVERING_THINGS, BridgeState.ERROR},
            BridgeState.DISCOVERING_THINGS: {BridgeState.OPERATIONAL, BridgeState.ERROR},
            BridgeState.OPERATIONAL:        {BridgeState.ERROR, BridgeState.SHUTDOWN},
            BridgeState.ERROR:              {BridgeState.SHUTDOWN},
            BridgeState.SHUTDOWN:           set(),
        }

    @property
    def state(self) -> BridgeState: return self._state

    def can(self, nxt: BridgeState) -> bool: return nxt in self._trans[self._state]

    def transition(self, nxt: BridgeState) -> bool:
        if self.can(nxt):
            self.logger.info("State transition: %s -> %s", self._state.name, nxt.name)
            self._state = nxt
            return True
        self.logger.error("Invalid state transition: %s -> %s", self._state.name, nxt.name)
        return False
