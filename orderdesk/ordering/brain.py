from __future__ import annotations

import logging
from dataclasses import dataclass, replace
from datetime import date
from typing import Callable, Dict, List, Optional, Sequence, Tuple, Type, TypeVar

from . import messages as msg
from .catalog import DEFAULT_WEIGHTS, MatchCandidate, MatchProfile, MatchWeights, rank_catalog
from .draft import Order, OrderDraft, bullet_lines, build_summary, numbered_lines
from .errors import CatalogLoadError, EmptyOrderError, OrderStoreError, SessionStateError
from .nlp import (
    is_number,
    normalize_text,
    parse_dispatch_date,
    parse_index,
    parse_item_text,
    parse_menu_choice,
    parse_quantity,
    parse_quick_order,
)
from .ports import AddressSource, CatalogSource, OrderStore
from .sessions import (
    AwaitingQuantity,
    ChoosingOrder,
    EditTarget,
    Editing,
    Flow,
    NoMatch,
    Prompting,
    RemovingLine,
    Selecting,
    Session,
    SessionStore,
    State,
    Step,
)

logger = logging.getLogger(__name__)

S = TypeVar("S", bound=State)

Handler = Callable[[Session, str, str], str]

_SELECT_STEP = {Flow.GUIDED: Step.SELECTING, Flow.QUICK: Step.QUICK_SELECTING, Flow.EDIT: Step.SELECTING}


@dataclass
class Reply:
    """Outbound text for one inbound message. `step` is None once the session ended."""

    messages: List[str]
    step: Optional[Step]


class ConversationEngine:
    """
    Per-session state machine for taking and editing orders over chat.

    Every inbound message is routed by the session's current step alone. A
    handler either rejects the input (reply, no change) or mutates the draft,
    moves to the next step and returns exactly one reply.
    """

    def __init__(
        self,
        sessions: SessionStore,
        catalog: CatalogSource,
        addresses: AddressSource,
        orders: OrderStore,
        weights: MatchWeights = DEFAULT_WEIGHTS,
        today: Callable[[], date] = date.today,
        max_message_length: int = 4000,
    ) -> None:
        self.sessions = sessions
        self.catalog = catalog
        self.addresses = addresses
        self.orders = orders
        self.weights = weights
        self.today = today
        self.max_message_length = max_message_length

        self._handlers: Dict[Step, Handler] = {
            Step.START: self._on_start,
            Step.CUSTOMER_NAME: self._on_customer_name,
            Step.PRODUCT: self._on_product,
            Step.SELECTING: self._on_selecting,
            Step.NO_MATCH: self._on_no_match,
            Step.QUANTITY: self._on_quantity,
            Step.ADD_ANOTHER: self._on_add_another,
            Step.REMOVE_LINE: self._on_remove_line,
            Step.DISPATCH_DATE: self._on_dispatch_date,
            Step.NOTE_QUESTION: self._on_note_question,
            Step.NOTE: self._on_note,
            Step.SUMMARY: self._on_summary,
            Step.MANUAL_ADDRESS: self._on_manual_address,
            Step.QUICK_ORDER: self._on_quick_order,
            Step.QUICK_SELECTING: self._on_selecting,
            Step.QUICK_ADD: self._on_quick_add,
            Step.QUICK_CONFIRM: self._on_quick_confirm,
            Step.QUICK_REMOVE: self._on_quick_remove,
            Step.QUICK_ADDRESS: self._on_quick_address,
            Step.SELECT_ORDER: self._on_select_order,
            Step.EDIT_OPTIONS: self._on_edit_options,
            Step.EDIT_PRODUCTS: self._on_edit_products,
            Step.EDIT_ADD: self._on_edit_add,
            Step.EDIT_PICK_QUANTITY_LINE: self._on_edit_pick_quantity_line,
            Step.EDIT_QUANTITY: self._on_edit_quantity,
            Step.EDIT_PICK_REMOVE_LINE: self._on_edit_pick_remove_line,
            Step.EDIT_DATE: self._on_edit_date,
            Step.EDIT_ADDRESS: self._on_edit_address,
            Step.EDIT_CONTINUE: self._on_edit_continue,
        }

    # ----------------------------
    # Entry point
    # ----------------------------
    def handle_message(self, identity: str, text: str, user: str) -> Reply:
        text = (text or "").strip()
        with self.sessions.lock(identity):
            session = self.sessions.get(identity)

            if text == msg.RESET_TOKEN:
                if session is None:
                    session = self.sessions.create(identity)
                else:
                    session.reset()
                    self.sessions.touch(session)
                logger.info("Session %s reset", identity)
                return self._reply(session, f"{msg.RESET_DONE}\n\n{msg.MAIN_MENU}")

            if session is None:
                session = self.sessions.create(identity)
                return self._reply(session, msg.MAIN_MENU)

            self.sessions.touch(session)
            if not text:
                return self._reply(session, msg.EMPTY_TEXT)

            before = session.step
            try:
                out = self._handlers[before](session, text, user)
            except (OrderStoreError, CatalogLoadError) as e:
                logger.error("Session %s at %s: collaborator failed: %s", identity, before.value, e)
                out = msg.STORE_FAILED
            except SessionStateError:
                logger.exception("Session %s at %s: inconsistent state, resetting", identity, before.value)
                session.reset()
                out = f"{msg.SESSION_BROKEN}\n\n{msg.MAIN_MENU}"

            if identity in self.sessions:
                logger.debug("Session %s: %s -> %s", identity, before.value, session.step.value)
            else:
                logger.debug("Session %s: %s -> (ended)", identity, before.value)
            return self._reply(session, out)

    def _reply(self, session: Session, text: str) -> Reply:
        step = session.step if session.identity in self.sessions else None
        return Reply(messages=msg.split_message(text, self.max_message_length), step=step)

    def _end(self, session: Session) -> None:
        self.sessions.delete(session.identity)

    # ----------------------------
    # Helpers
    # ----------------------------
    @staticmethod
    def _expect(session: Session, kind: Type[S]) -> S:
        if not isinstance(session.state, kind):
            raise SessionStateError(
                f"step {session.step.value} expects {kind.__name__}, got {type(session.state).__name__}"
            )
        return session.state

    def _edit_target(self, session: Session) -> EditTarget:
        return self._expect(session, Editing).target

    def _rank(self, query: str, profile: MatchProfile) -> List[MatchCandidate]:
        return rank_catalog(query, self.catalog.list(), profile, self.weights)

    def _summary(self, session: Session, extra: str = "") -> str:
        address = session.draft.effective_address(self.addresses.list())
        return f"{build_summary(session.draft, address)}{extra}\n\n{msg.ORDER_MENU}"

    @staticmethod
    def _order_overview(order: Order) -> str:
        return (
            "📄 Pedido seleccionado:\n\n"
            f"Cliente: {order.customer_name}\n"
            f"Fecha: {order.dispatch_date or '-'}\n"
            "Productos:\n"
            f"{bullet_lines(order.descriptions, order.quantities)}\n\n"
            f"📍 Dirección: {order.address}"
        )

    def _search(
        self,
        session: Session,
        query: str,
        flow: Flow,
        profile: MatchProfile,
        quantity: Optional[str] = None,
        target: Optional[EditTarget] = None,
    ) -> str:
        candidates = self._rank(query, profile)
        if not candidates:
            session.state = NoMatch(flow=flow, text=query, quantity=quantity, target=target)
            return msg.NO_MATCH_MENU
        session.state = Selecting(
            step=_SELECT_STEP[flow],
            flow=flow,
            query=query,
            candidates=tuple(candidates),
            profile=profile,
            quantity=quantity,
            target=target,
        )
        return msg.options_found(candidates)

    def _accept_item(
        self,
        session: Session,
        flow: Flow,
        description: str,
        code: str,
        quantity: Optional[str],
        target: Optional[EditTarget],
        pending: Tuple[Tuple[str, str], ...] = (),
    ) -> str:
        if flow is Flow.GUIDED:
            session.state = AwaitingQuantity(description=description, code=code)
            return f"📦 Escribe la cantidad para {description}:"

        if flow is Flow.QUICK:
            session.draft.add_line(description, quantity or "1", code)
            return self._advance_quick(session, pending, [])

        if target is None:
            raise SessionStateError("adding to a stored order without a loaded order")
        draft = OrderDraft.from_order(target.order)
        draft.add_line(description, quantity or "1", code)
        return self._commit_edit(session, target, draft, "✅ Producto agregado")

    def _advance_quick(self, session: Session, pending: Sequence[Tuple[str, str]], unmatched: List[str]) -> str:
        """
        Resolve quick-order lines in order. Lines without any candidate are kept
        as typed; the first line with candidates stops and asks for a choice.
        """
        queue = list(pending)
        while queue:
            name, qty = queue.pop(0)
            candidates = self._rank(name, MatchProfile.QUICK)
            if candidates:
                session.state = Selecting(
                    step=Step.QUICK_SELECTING,
                    flow=Flow.QUICK,
                    query=name,
                    candidates=tuple(candidates),
                    profile=MatchProfile.QUICK,
                    quantity=qty,
                    pending=tuple(queue),
                )
                notice = msg.unmatched_warning(unmatched).strip()
                prompt = msg.options_found(candidates, name)
                return f"{notice}\n\n{prompt}" if notice else prompt
            session.draft.add_line(name, qty, "")
            unmatched.append(name)

        session.state = Prompting(Step.QUICK_CONFIRM)
        return self._summary(session, msg.unmatched_warning(unmatched))

    def _finalize(self, session: Session, user: str) -> str:
        try:
            order = session.draft.finalize(self.addresses.list(), user)
        except EmptyOrderError:
            return f"{msg.NO_LINES}\n\n{self._summary(session)}"
        self.orders.append(order)
        logger.info("Order for %s saved by %s (%d lines)", order.customer_name, order.submitting_user, len(order.descriptions))
        self._end(session)
        return msg.ORDER_SAVED

    def _commit_edit(self, session: Session, target: EditTarget, draft: OrderDraft, done: str) -> str:
        order = draft.finalize(self.addresses.list())
        index = self.orders.update(target.index, order)
        session.state = Editing(Step.EDIT_CONTINUE, EditTarget(index=index, order=order))
        return f"{done}\n{msg.CONTINUE_EDIT_MENU}"

    # ----------------------------
    # Main menu
    # ----------------------------
    def _on_start(self, session: Session, text: str, user: str) -> str:
        choice = parse_menu_choice(text, "123")
        if choice == "1":
            session.draft = OrderDraft(submitting_user=user)
            session.state = Prompting(Step.CUSTOMER_NAME)
            return msg.ASK_CUSTOMER
        if choice == "2":
            listings = self.orders.list_by_user(user)
            if not listings:
                self._end(session)
                return msg.NO_ORDERS
            session.state = ChoosingOrder(orders=tuple(listings))
            return self._order_list(listings)
        if choice == "3":
            session.draft = OrderDraft(submitting_user=user)
            session.state = Prompting(Step.QUICK_ORDER)
            return msg.QUICK_ORDER_HELP
        return msg.invalid_option(msg.MAIN_MENU)

    @staticmethod
    def _order_list(listings: Sequence) -> str:
        rows = "\n".join(f"{i}. {o.customer_name} - {o.dispatch_date or '-'}" for i, o in enumerate(listings, start=1))
        return f"📋 Tus pedidos:\n{rows}\n\nSelecciona el número del pedido a modificar:"

    # ----------------------------
    # Guided order
    # ----------------------------
    def _on_customer_name(self, session: Session, text: str, user: str) -> str:
        session.draft.customer_name = text
        session.state = Prompting(Step.PRODUCT)
        return msg.ASK_PRODUCT

    def _on_product(self, session: Session, text: str, user: str) -> str:
        return self._search(session, text, Flow.GUIDED, MatchProfile.SEARCH)

    def _on_selecting(self, session: Session, text: str, user: str) -> str:
        state = self._expect(session, Selecting)

        if is_number(text):
            idx = parse_index(text, len(state.candidates))
            if idx is None:
                return f"{msg.INVALID_SELECTION}\n\n{msg.options_found(state.candidates)}"
            chosen = state.candidates[idx].item
            return self._accept_item(
                session, state.flow, chosen.memo, chosen.code, state.quantity, state.target, state.pending
            )

        # anything else is a new search for the same line
        candidates = self._rank(text, state.profile)
        if not candidates:
            return msg.no_results_keep_list(text, state.candidates)
        session.state = replace(state, query=text, candidates=tuple(candidates))
        return msg.options_found(candidates, text)

    def _on_no_match(self, session: Session, text: str, user: str) -> str:
        state = self._expect(session, NoMatch)
        choice = parse_menu_choice(text, "12")
        if choice == "1":
            if state.flow is Flow.GUIDED:
                session.state = Prompting(Step.PRODUCT)
                return msg.ASK_PRODUCT_AGAIN
            if state.flow is Flow.QUICK:
                session.state = Prompting(Step.QUICK_ADD)
                return msg.ASK_PRODUCT_WITH_QTY
            if state.target is None:
                raise SessionStateError("edit search without a loaded order")
            session.state = Editing(Step.EDIT_ADD, state.target)
            return msg.ASK_PRODUCT_WITH_QTY
        if choice == "2":
            return self._accept_item(session, state.flow, state.text, "", state.quantity, state.target)
        return msg.invalid_option(msg.NO_MATCH_MENU)

    def _on_quantity(self, session: Session, text: str, user: str) -> str:
        state = self._expect(session, AwaitingQuantity)
        qty = parse_quantity(text)
        if qty is None:
            return msg.INVALID_QUANTITY
        session.draft.add_line(state.description, qty, state.code)
        session.state = Prompting(Step.ADD_ANOTHER)
        return f"✅ Añadido: {state.description} ({qty})\n\n{msg.ADD_ANOTHER_MENU}"

    def _on_add_another(self, session: Session, text: str, user: str) -> str:
        choice = parse_menu_choice(text, "123")
        if choice == "1":
            session.state = Prompting(Step.PRODUCT)
            return msg.ASK_NEXT_PRODUCT
        if choice == "2":
            if not len(session.draft):
                session.state = Prompting(Step.PRODUCT)
                return f"{msg.NO_LINES}\n{msg.ASK_PRODUCT}"
            session.state = Prompting(Step.DISPATCH_DATE)
            return msg.ASK_DATE
        if choice == "3":
            if not len(session.draft):
                return f"{msg.NO_LINES}\n\n{msg.ADD_ANOTHER_MENU}"
            session.state = RemovingLine(return_to=Step.ADD_ANOTHER)
            return self._remove_prompt(session.draft)
        return msg.invalid_option(msg.ADD_ANOTHER_MENU)

    @staticmethod
    def _remove_prompt(draft: OrderDraft) -> str:
        return f"🗑 ¿Cuál producto deseas eliminar?\n{numbered_lines(draft.descriptions, draft.quantities)}"

    def _on_remove_line(self, session: Session, text: str, user: str) -> str:
        state = self._expect(session, RemovingLine)
        idx = parse_index(text, len(session.draft))
        if idx is None:
            return f"{msg.INVALID_LINE}\n\n{self._remove_prompt(session.draft)}"
        removed = session.draft.remove_line(idx)
        done = f"🗑 Producto eliminado: {removed}"
        if state.return_to is Step.SUMMARY:
            session.state = Prompting(Step.SUMMARY)
            return f"{done}\n\n{self._summary(session)}"
        session.state = Prompting(Step.ADD_ANOTHER)
        return f"{done}\n\n{msg.ADD_ANOTHER_MENU}"

    def _on_dispatch_date(self, session: Session, text: str, user: str) -> str:
        when = parse_dispatch_date(text, self.today())
        if when is None:
            return msg.INVALID_DATE
        session.draft.dispatch_date = when
        session.state = Prompting(Step.NOTE_QUESTION)
        return msg.NOTE_MENU

    def _on_note_question(self, session: Session, text: str, user: str) -> str:
        choice = parse_menu_choice(text, "12")
        if choice == "1":
            session.state = Prompting(Step.NOTE)
            return msg.ASK_NOTE
        if choice == "2":
            session.draft.note = ""
            session.state = Prompting(Step.SUMMARY)
            return self._summary(session)
        return msg.invalid_option(msg.NOTE_MENU)

    def _on_note(self, session: Session, text: str, user: str) -> str:
        session.draft.note = text
        session.state = Prompting(Step.SUMMARY)
        return self._summary(session)

    def _on_summary(self, session: Session, text: str, user: str) -> str:
        choice = "4" if normalize_text(text) == "direccion" else parse_menu_choice(text, "01234")
        if choice == "0":
            self._end(session)
            return msg.ORDER_CANCELLED
        if choice == "1":
            session.state = Prompting(Step.PRODUCT)
            return msg.ASK_PRODUCT
        if choice == "2":
            if not len(session.draft):
                return f"{msg.NO_LINES}\n\n{self._summary(session)}"
            session.state = RemovingLine(return_to=Step.SUMMARY)
            return self._remove_prompt(session.draft)
        if choice == "3":
            return self._finalize(session, user)
        if choice == "4":
            session.state = Prompting(Step.MANUAL_ADDRESS)
            return msg.ASK_ADDRESS
        return msg.invalid_option(msg.ORDER_MENU)

    def _on_manual_address(self, session: Session, text: str, user: str) -> str:
        session.draft.manual_address = text
        session.state = Prompting(Step.SUMMARY)
        return self._summary(session)

    # ----------------------------
    # Quick order
    # ----------------------------
    def _on_quick_order(self, session: Session, text: str, user: str) -> str:
        if len([ln for ln in text.split("\n") if ln.strip()]) < 2:
            return msg.QUICK_TOO_SHORT
        customer, items, address = parse_quick_order(text)
        if not items:
            return msg.QUICK_NO_ITEMS

        session.draft = OrderDraft(
            customer_name=customer,
            manual_address=address,
            dispatch_date=self.today().strftime("%m/%d/%Y"),
            submitting_user=user,
        )
        return self._advance_quick(session, items, [])

    def _on_quick_confirm(self, session: Session, text: str, user: str) -> str:
        choice = parse_menu_choice(text, "01234")
        if choice == "0":
            self._end(session)
            return msg.ORDER_CANCELLED
        if choice == "1":
            session.state = Prompting(Step.QUICK_ADD)
            return msg.ASK_PRODUCT_WITH_QTY
        if choice == "2":
            if not len(session.draft):
                return f"{msg.NO_LINES}\n\n{self._summary(session)}"
            session.state = Prompting(Step.QUICK_REMOVE)
            return self._remove_prompt(session.draft)
        if choice == "3":
            return self._finalize(session, user)
        if choice == "4":
            session.state = Prompting(Step.QUICK_ADDRESS)
            return msg.ASK_ADDRESS
        return msg.invalid_option(msg.ORDER_MENU)

    def _on_quick_add(self, session: Session, text: str, user: str) -> str:
        name, qty = parse_item_text(text)
        return self._search(session, name, Flow.QUICK, MatchProfile.ADD, quantity=qty)

    def _on_quick_remove(self, session: Session, text: str, user: str) -> str:
        idx = parse_index(text, len(session.draft))
        if idx is None:
            return f"{msg.INVALID_LINE}\n\n{self._remove_prompt(session.draft)}"
        removed = session.draft.remove_line(idx)
        session.state = Prompting(Step.QUICK_CONFIRM)
        return f"🗑 Producto eliminado: {removed}\n\n{self._summary(session)}"

    def _on_quick_address(self, session: Session, text: str, user: str) -> str:
        session.draft.manual_address = text
        session.state = Prompting(Step.QUICK_CONFIRM)
        return self._summary(session)

    # ----------------------------
    # Editing a stored order
    # ----------------------------
    def _on_select_order(self, session: Session, text: str, user: str) -> str:
        state = self._expect(session, ChoosingOrder)
        idx = parse_index(text, len(state.orders))
        if idx is None:
            return f"{msg.INVALID_SELECTION}\n\n{self._order_list(state.orders)}"
        listing = state.orders[idx]
        order = self.orders.load_by_index(listing.index)
        session.state = Editing(Step.EDIT_OPTIONS, EditTarget(index=listing.index, order=order))
        return f"{self._order_overview(order)}\n\n{msg.EDIT_MENU}"

    def _on_edit_options(self, session: Session, text: str, user: str) -> str:
        target = self._edit_target(session)
        choice = parse_menu_choice(text, "1234")
        if choice == "1":
            session.state = Editing(Step.EDIT_PRODUCTS, target)
            return msg.EDIT_PRODUCTS_MENU
        if choice == "2":
            session.state = Editing(Step.EDIT_DATE, target)
            return msg.ASK_NEW_DATE
        if choice == "3":
            session.state = Editing(Step.EDIT_ADDRESS, target)
            return msg.ASK_ADDRESS
        if choice == "4":
            self.orders.delete_by_index(target.index)
            logger.info("Order %s deleted by %s", target.index, user)
            self._end(session)
            return msg.ORDER_DELETED
        return msg.invalid_option(msg.EDIT_MENU)

    def _on_edit_products(self, session: Session, text: str, user: str) -> str:
        target = self._edit_target(session)
        order = target.order
        choice = parse_menu_choice(text, "123")
        if choice == "1":
            session.state = Editing(Step.EDIT_ADD, target)
            return msg.ASK_PRODUCT_WITH_QTY
        if choice == "2":
            session.state = Editing(Step.EDIT_PICK_QUANTITY_LINE, target)
            return f"Selecciona el producto a modificar:\n{numbered_lines(order.descriptions, order.quantities)}"
        if choice == "3":
            if len(order.descriptions) <= 1:
                return f"{msg.LAST_LINE}\n\n{msg.EDIT_PRODUCTS_MENU}"
            session.state = Editing(Step.EDIT_PICK_REMOVE_LINE, target)
            return f"Selecciona el producto a eliminar:\n{numbered_lines(order.descriptions)}"
        return msg.invalid_option(msg.EDIT_PRODUCTS_MENU)

    def _on_edit_add(self, session: Session, text: str, user: str) -> str:
        target = self._edit_target(session)
        name, qty = parse_item_text(text)
        return self._search(session, name, Flow.EDIT, MatchProfile.ADD, quantity=qty, target=target)

    def _on_edit_pick_quantity_line(self, session: Session, text: str, user: str) -> str:
        target = self._edit_target(session)
        order = target.order
        idx = parse_index(text, len(order.descriptions))
        if idx is None:
            return f"{msg.INVALID_SELECTION}\n\n{numbered_lines(order.descriptions, order.quantities)}"
        session.state = Editing(Step.EDIT_QUANTITY, target, line_index=idx)
        return msg.ASK_NEW_QUANTITY

    def _on_edit_quantity(self, session: Session, text: str, user: str) -> str:
        state = self._expect(session, Editing)
        if state.line_index is None:
            raise SessionStateError("new quantity without a selected line")
        qty = parse_quantity(text)
        if qty is None:
            return msg.INVALID_QUANTITY
        draft = OrderDraft.from_order(state.target.order)
        draft.set_quantity(state.line_index, qty)
        return self._commit_edit(session, state.target, draft, "✅ Cantidad actualizada")

    def _on_edit_pick_remove_line(self, session: Session, text: str, user: str) -> str:
        target = self._edit_target(session)
        order = target.order
        idx = parse_index(text, len(order.descriptions))
        if idx is None:
            return f"{msg.INVALID_SELECTION}\n\n{numbered_lines(order.descriptions)}"
        draft = OrderDraft.from_order(order)
        draft.remove_line(idx)
        return self._commit_edit(session, target, draft, "✅ Producto eliminado")

    def _on_edit_date(self, session: Session, text: str, user: str) -> str:
        target = self._edit_target(session)
        when = parse_dispatch_date(text, self.today())
        if when is None:
            return msg.INVALID_DATE
        draft = OrderDraft.from_order(target.order)
        draft.dispatch_date = when
        return self._commit_edit(session, target, draft, "✅ Fecha actualizada")

    def _on_edit_address(self, session: Session, text: str, user: str) -> str:
        target = self._edit_target(session)
        draft = OrderDraft.from_order(target.order)
        draft.manual_address = text
        return self._commit_edit(session, target, draft, "✅ Dirección actualizada")

    def _on_edit_continue(self, session: Session, text: str, user: str) -> str:
        target = self._edit_target(session)
        choice = parse_menu_choice(text, "12")
        if choice == "1":
            order = self.orders.load_by_index(target.index)
            session.state = Editing(Step.EDIT_OPTIONS, EditTarget(index=target.index, order=order))
            return f"{self._order_overview(order)}\n\n{msg.EDIT_MENU}"
        if choice == "2":
            self._end(session)
            return msg.EDIT_FINISHED
        return msg.invalid_option(msg.CONTINUE_EDIT_MENU)
