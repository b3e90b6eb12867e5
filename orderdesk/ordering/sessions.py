from __future__ import annotations

import logging
import threading
import time
from contextlib import contextmanager
from dataclasses import dataclass, field
from enum import Enum
from typing import Callable, Dict, Iterator, List, Optional, Tuple, Union

from .catalog import MatchCandidate, MatchProfile
from .draft import Order, OrderDraft
from .ports import OrderListing

logger = logging.getLogger(__name__)


class Step(str, Enum):
    # main menu
    START = "inicio"

    # guided order
    CUSTOMER_NAME = "nombre"
    PRODUCT = "producto"
    SELECTING = "esperandoSeleccion"
    NO_MATCH = "productoSinCoincidencia"
    QUANTITY = "cantidad"
    ADD_ANOTHER = "agregarOtro"
    REMOVE_LINE = "eliminarResumen"
    DISPATCH_DATE = "fecha"
    NOTE_QUESTION = "notaPregunta"
    NOTE = "nota"
    SUMMARY = "resumen"
    MANUAL_ADDRESS = "direccionManual"

    # quick order
    QUICK_ORDER = "pedidoRapido"
    QUICK_SELECTING = "esperandoSeleccionRapido"
    QUICK_ADD = "agregarProductoRapido"
    QUICK_CONFIRM = "confirmarPedidoRapido"
    QUICK_REMOVE = "eliminarProductoRapido"
    QUICK_ADDRESS = "modificarDireccionRapida"

    # editing a stored order
    SELECT_ORDER = "seleccionarPedido"
    EDIT_OPTIONS = "opcionesModificacion"
    EDIT_PRODUCTS = "modificarProductos"
    EDIT_ADD = "agregarProducto"
    EDIT_PICK_QUANTITY_LINE = "seleccionarProductoModificar"
    EDIT_QUANTITY = "nuevaCantidad"
    EDIT_PICK_REMOVE_LINE = "seleccionarProductoEliminar"
    EDIT_DATE = "modificarFecha"
    EDIT_ADDRESS = "modificarDireccion"
    EDIT_CONTINUE = "continuarEdicion"


class Flow(str, Enum):
    GUIDED = "guided"
    QUICK = "quick"
    EDIT = "edit"


# ----------------------------
# State variants
# Each variant carries only the data valid for its steps.
# ----------------------------
@dataclass(frozen=True)
class EditTarget:
    """A stored order opened for editing and the index it lives at."""

    index: int
    order: Order


@dataclass(frozen=True)
class Prompting:
    """Steps that need nothing beyond the session draft."""

    step: Step


@dataclass(frozen=True)
class Selecting:
    step: Step
    flow: Flow
    query: str
    candidates: Tuple[MatchCandidate, ...]
    profile: MatchProfile = MatchProfile.SEARCH
    quantity: Optional[str] = None
    # quick-order lines still waiting for a selection
    pending: Tuple[Tuple[str, str], ...] = ()
    target: Optional[EditTarget] = None


@dataclass(frozen=True)
class NoMatch:
    flow: Flow
    text: str
    quantity: Optional[str] = None
    target: Optional[EditTarget] = None
    step: Step = Step.NO_MATCH


@dataclass(frozen=True)
class AwaitingQuantity:
    description: str
    code: str
    step: Step = Step.QUANTITY


@dataclass(frozen=True)
class RemovingLine:
    return_to: Step
    step: Step = Step.REMOVE_LINE


@dataclass(frozen=True)
class ChoosingOrder:
    orders: Tuple[OrderListing, ...]
    step: Step = Step.SELECT_ORDER


@dataclass(frozen=True)
class Editing:
    step: Step
    target: EditTarget
    line_index: Optional[int] = None


State = Union[Prompting, Selecting, NoMatch, AwaitingQuantity, RemovingLine, ChoosingOrder, Editing]

INITIAL_STATE = Prompting(Step.START)


@dataclass
class Session:
    identity: str
    state: State = INITIAL_STATE
    draft: OrderDraft = field(default_factory=OrderDraft)
    last_activity: float = 0.0

    @property
    def step(self) -> Step:
        return self.state.step

    def reset(self) -> None:
        self.state = INITIAL_STATE
        self.draft = OrderDraft()


# ----------------------------
# Store
# ----------------------------
class SessionStore:
    """
    Process-wide map from chat identity to Session.

    Callers hold lock(identity) while handling a message; sweep() never
    evicts a session whose lock is held.
    """

    def __init__(self, idle_seconds: float = 30 * 60, clock: Callable[[], float] = time.time) -> None:
        self.idle_seconds = idle_seconds
        self._clock = clock
        self._sessions: Dict[str, Session] = {}
        self._locks: Dict[str, threading.Lock] = {}
        self._guard = threading.Lock()

    def __len__(self) -> int:
        with self._guard:
            return len(self._sessions)

    def __contains__(self, identity: str) -> bool:
        with self._guard:
            return identity in self._sessions

    def get(self, identity: str) -> Optional[Session]:
        with self._guard:
            return self._sessions.get(identity)

    def create(self, identity: str) -> Session:
        session = Session(identity=identity, last_activity=self._clock())
        with self._guard:
            self._sessions[identity] = session
        logger.info("Created session for %s", identity)
        return session

    def touch(self, session: Session) -> None:
        session.last_activity = self._clock()

    def delete(self, identity: str) -> None:
        with self._guard:
            removed = self._sessions.pop(identity, None)
            lock = self._locks.get(identity)
        if removed is not None:
            logger.debug("Deleted session for %s", identity)
        # a held lock is dropped by its holder on the way out of lock()
        if lock is not None and lock.acquire(blocking=False):
            try:
                with self._guard:
                    self._drop_lock(identity, lock)
            finally:
                lock.release()

    def _lock_for(self, identity: str) -> threading.Lock:
        with self._guard:
            lock = self._locks.get(identity)
            if lock is None:
                lock = self._locks[identity] = threading.Lock()
            return lock

    def _drop_lock(self, identity: str, lock: threading.Lock) -> None:
        # caller holds _guard and `lock`
        if identity not in self._sessions and self._locks.get(identity) is lock:
            del self._locks[identity]

    @contextmanager
    def lock(self, identity: str) -> Iterator[None]:
        """
        Serialize work on one identity. Locks live only as long as their
        session; a waiter that wakes up on a dropped lock takes the new one.
        """
        while True:
            lock = self._lock_for(identity)
            lock.acquire()
            with self._guard:
                if self._locks.get(identity) is lock:
                    break
            lock.release()
        try:
            yield
        finally:
            with self._guard:
                self._drop_lock(identity, lock)
            lock.release()

    def _is_idle(self, session: Session, now: float) -> bool:
        return now - session.last_activity > self.idle_seconds

    def sweep(self) -> List[str]:
        """Evict idle sessions. Returns the evicted identities."""
        now = self._clock()
        with self._guard:
            idle = [sid for sid, s in self._sessions.items() if self._is_idle(s, now)]

        evicted: List[str] = []
        for identity in idle:
            lock = self._lock_for(identity)
            if not lock.acquire(blocking=False):
                continue  # a message is being handled right now
            try:
                with self._guard:
                    session = self._sessions.get(identity)
                    if session is not None and self._is_idle(session, self._clock()):
                        del self._sessions[identity]
                        evicted.append(identity)
                    self._drop_lock(identity, lock)
            finally:
                lock.release()

        for identity in evicted:
            logger.info("Evicted idle session %s", identity)
        return evicted
