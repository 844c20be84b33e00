"""
Checkout service - Order checkout wizard.

`CheckoutSession` is the checkout state machine: every user action arrives as
an event through `dispatch()`, mutates the session's private state and ends
in `recompute_totals()`. It never touches the database; the module-level
functions below load it from / save it to a `CheckoutDraft` row and write the
finalized result back to the `Order`.
"""
import logging
from dataclasses import dataclass, field, replace
from decimal import Decimal, ROUND_HALF_UP
from typing import Any, Dict, List, Optional, Tuple

from sqlalchemy.orm import Session

from tabletop.exceptions import (
    PosError, BusinessLogicError, NotFoundError, InvalidDiscountError, StaleDiscountError,
    OverpaymentError, IncompleteFiscalInfoError, UnderfundedSplitError,
    MissingPaymentMethodError, ItemAlreadyCoveredError, InvalidTransitionError
)
from tabletop.services.totals_service import (
    OrderTotals, DiscountRule, TipMode, ZERO, PAYMENT_EPSILON,
    calculate_totals, resolve_tip, is_billable, charged_subtotal, to_decimal
)
from tabletop.services.split_service import SplitAllocation, allocate_split, equal_share_due
from tabletop.models.order import DteType, PaymentMethod

logger = logging.getLogger(__name__)


class CheckoutStep:
    SUMMARY = 'summary_and_courtesy'
    DISCOUNTS = 'discounts_and_tip'
    PAYMENT = 'payment_method_and_dte'
    SPLITS = 'split_payment_details'

    ORDER = (SUMMARY, DISCOUNTS, PAYMENT, SPLITS)


class PaymentStrategy:
    FULL = 'full'
    SPLIT = 'split'


class SplitType:
    EQUAL = 'equal'
    BY_ITEM = 'by_item'
    BY_CUSTOMER_BILL = 'by_customer_bill'

    ITEMIZED = (BY_ITEM, BY_CUSTOMER_BILL)


PAYMENT_METHODS = tuple(method.value for method in PaymentMethod)
DTE_TYPES = tuple(dte.value for dte in DteType)
UNASSIGNED_GUEST = 'Sin asignar'
STORED_AMOUNT_EXP = Decimal('0.000001')


@dataclass(frozen=True)
class CheckoutLine:
    """Snapshot of an order item as seen by the checkout."""

    id: Any
    menu_item_id: Any
    name: str
    price: Decimal
    quantity: int
    is_courtesy: bool = False
    status: str = 'pending'
    category_id: Any = None
    assigned_guest: Optional[str] = None

    @classmethod
    def from_item(cls, item) -> 'CheckoutLine':
        return cls(
            id=item.id,
            menu_item_id=item.menu_item_id,
            name=item.name,
            price=to_decimal(item.price),
            quantity=int(item.quantity),
            is_courtesy=bool(item.is_courtesy),
            status=item.status,
            category_id=getattr(item, 'category_id', None),
            assigned_guest=getattr(item, 'assigned_guest', None),
        )

    def to_dict(self) -> dict:
        return {
            'id': self.id,
            'menu_item_id': self.menu_item_id,
            'name': self.name,
            'price': str(self.price),
            'quantity': self.quantity,
            'is_courtesy': self.is_courtesy,
            'status': self.status,
            'category_id': self.category_id,
            'assigned_guest': self.assigned_guest,
        }


@dataclass
class DteInfo:
    """DTE (electronic tax document) selection."""

    dte_type: str = DteType.CONSUMIDOR_FINAL.value
    nit: str = ''
    nrc: str = ''
    customer_name: str = ''

    def missing_fields(self) -> List[str]:
        if self.dte_type != DteType.CREDITO_FISCAL.value:
            return []
        return [name for name in ('nit', 'nrc', 'customer_name') if not (getattr(self, name) or '').strip()]

    def to_dict(self) -> dict:
        return {'dte_type': self.dte_type, 'nit': self.nit, 'nrc': self.nrc, 'customer_name': self.customer_name}

    @classmethod
    def from_dict(cls, data: Optional[dict]) -> Optional['DteInfo']:
        if data is None:
            return None
        dte_type = data.get('dte_type') or DteType.CONSUMIDOR_FINAL.value
        if dte_type not in DTE_TYPES:
            raise BusinessLogicError(f'Tipo de DTE inválido: {dte_type}')
        return cls(
            dte_type=dte_type,
            nit=(data.get('nit') or '').strip(),
            nrc=(data.get('nrc') or '').strip(),
            customer_name=(data.get('customer_name') or '').strip(),
        )


@dataclass
class SplitState:
    """A payment split inside a checkout. Frozen once `is_paid` is set."""

    id: str
    split_type: str
    amount_due: Decimal = ZERO
    amount_to_pay_override: Optional[Decimal] = None
    payment_method: Optional[str] = None
    covered_item_ids: Tuple = field(default_factory=tuple)
    share_number: Optional[int] = None
    guest: Optional[str] = None
    is_paid: bool = False
    amount_paid: Decimal = ZERO
    dte: Optional[DteInfo] = None
    allocation: Optional[SplitAllocation] = None

    @property
    def amount_to_pay(self) -> Decimal:
        if self.is_paid:
            return self.amount_paid
        return self.amount_due if self.amount_to_pay_override is None else self.amount_to_pay_override

    @property
    def is_itemized(self) -> bool:
        return self.split_type in SplitType.ITEMIZED

    def to_dict(self) -> dict:
        return {
            'id': self.id,
            'split_type': self.split_type,
            'amount_due': str(self.amount_due),
            'amount_to_pay': str(self.amount_to_pay),
            'amount_to_pay_override': None if self.amount_to_pay_override is None else str(self.amount_to_pay_override),
            'payment_method': self.payment_method,
            'covered_item_ids': list(self.covered_item_ids),
            'share_number': self.share_number,
            'guest': self.guest,
            'is_paid': self.is_paid,
            'amount_paid': str(self.amount_paid),
            'dte': self.dte.to_dict() if self.dte else None,
            'allocation': self.allocation.to_dict() if self.allocation else None,
        }

    @classmethod
    def from_dict(cls, data: dict) -> 'SplitState':
        allocation = data.get('allocation')
        override = data.get('amount_to_pay_override')
        return cls(
            id=data['id'],
            split_type=data['split_type'],
            amount_due=Decimal(data['amount_due']),
            amount_to_pay_override=None if override is None else Decimal(override),
            payment_method=data.get('payment_method'),
            covered_item_ids=tuple(data.get('covered_item_ids') or ()),
            share_number=data.get('share_number'),
            guest=data.get('guest'),
            is_paid=bool(data.get('is_paid')),
            amount_paid=Decimal(data.get('amount_paid') or '0'),
            dte=DteInfo.from_dict(data.get('dte')),
            allocation=SplitAllocation(**{k: Decimal(v) for k, v in allocation.items()}) if allocation else None,
        )

    @classmethod
    def from_payment_split(cls, paid, split_id: str) -> 'SplitState':
        """Rebuild a paid split from its persisted PaymentSplit row."""
        dte = None
        if paid.dte_type:
            dte = DteInfo(
                dte_type=paid.dte_type,
                nit=paid.dte_nit or '',
                nrc=paid.dte_nrc or '',
                customer_name=paid.dte_customer_name or '',
            )
        return cls.from_dict({
            'id': split_id,
            'split_type': paid.split_type,
            'amount_due': str(paid.amount_due),
            'payment_method': paid.payment_method,
            'covered_item_ids': paid.covered_item_ids,
            'share_number': paid.share_number,
            'is_paid': True,
            'amount_paid': str(paid.amount_paid),
            'dte': dte.to_dict() if dte else None,
            'allocation': paid.allocation,
        })


class CheckoutSession:
    """
    Checkout wizard state machine for one order.

    Steps: summary_and_courtesy -> discounts_and_tip -> payment_method_and_dte
    -> [split_payment_details, only when paying by split].

    `catalog` resolves discount presets; it needs `get_rule(preset_id)` and
    `find_rule_by_coupon(code)`, both returning a DiscountRule or None.
    """

    def __init__(self, order_id, lines, tax_rate=Decimal('0.13'), default_tip_percentage=Decimal('15'),
                 epsilon=PAYMENT_EPSILON, catalog=None):
        self.order_id = order_id
        self.lines: List[CheckoutLine] = list(lines)
        self.tax_rate = to_decimal(tax_rate)
        self.default_tip_percentage = to_decimal(default_tip_percentage)
        self.epsilon = to_decimal(epsilon)
        self.catalog = catalog

        self.step = CheckoutStep.SUMMARY

        # Order-level flags
        self.is_courtesy = False
        self.is_on_hold = False
        self.disable_receipt_print = False

        # Staged discount (entered, not yet applied)
        self.staged_preset_id = None
        self.staged_coupon_code: Optional[str] = None
        self.staged_manual_amount = ZERO

        # Applied discount
        self.applied_preset: Optional[DiscountRule] = None
        self.applied_manual_amount = ZERO

        # Tip
        self.tip_mode = TipMode.DEFAULT
        self.tip_percentage: Optional[Decimal] = None
        self.tip_manual_amount = ZERO

        # Payment
        self.payment_strategy = PaymentStrategy.FULL
        self.payment_method: Optional[str] = None
        self.dte = DteInfo()
        self.per_split_dte = False
        self.split_type: Optional[str] = None
        self.splits: List[SplitState] = []
        self._split_seq = 0

        self.totals = OrderTotals()
        self.recompute_totals()

    # ------------------------------------------------------------------
    # Construction / serialization
    # ------------------------------------------------------------------

    @classmethod
    def from_order(cls, order, tax_rate=Decimal('0.13'), default_tip_percentage=Decimal('15'),
                   epsilon=PAYMENT_EPSILON, catalog=None) -> 'CheckoutSession':
        """Start a checkout from an order's current state."""
        checkout = cls(
            order.id,
            [CheckoutLine.from_item(item) for item in order.items],
            tax_rate=tax_rate,
            default_tip_percentage=default_tip_percentage,
            epsilon=epsilon,
            catalog=catalog
        )
        checkout.is_courtesy = bool(order.is_courtesy)
        checkout.is_on_hold = bool(order.is_on_hold)
        checkout.disable_receipt_print = bool(order.disable_receipt_print)
        if order.applied_preset:
            checkout.applied_preset = DiscountRule.from_dict(order.applied_preset)
        checkout.applied_manual_amount = to_decimal(order.manual_discount_amount)
        checkout.staged_manual_amount = checkout.applied_manual_amount

        # Splits paid before the order was put on hold
        if order.payment_splits:
            checkout.payment_strategy = PaymentStrategy.SPLIT
            checkout.split_type = order.payment_split_type
            checkout.tip_mode = TipMode.MANUAL
            checkout.tip_manual_amount = to_decimal(order.tip_amount)
            for paid in order.payment_splits:
                checkout.splits.append(SplitState.from_payment_split(paid, checkout._next_split_id()))
            checkout.per_split_dte = any(split.dte for split in checkout.splits)
        checkout.recompute_totals()
        return checkout

    def to_state(self) -> dict:
        """JSON-serializable state (Decimals as strings)."""
        return {
            'order_id': self.order_id,
            'step': self.step,
            'is_courtesy': self.is_courtesy,
            'is_on_hold': self.is_on_hold,
            'disable_receipt_print': self.disable_receipt_print,
            'courtesy_overrides': [[line.id, line.is_courtesy] for line in self.lines],
            'staged_preset_id': self.staged_preset_id,
            'staged_coupon_code': self.staged_coupon_code,
            'staged_manual_amount': str(self.staged_manual_amount),
            'applied_preset': self.applied_preset.to_dict() if self.applied_preset else None,
            'applied_manual_amount': str(self.applied_manual_amount),
            'tip_mode': self.tip_mode,
            'tip_percentage': None if self.tip_percentage is None else str(self.tip_percentage),
            'tip_manual_amount': str(self.tip_manual_amount),
            'payment_strategy': self.payment_strategy,
            'payment_method': self.payment_method,
            'dte': self.dte.to_dict(),
            'per_split_dte': self.per_split_dte,
            'split_type': self.split_type,
            'splits': [split.to_dict() for split in self.splits],
            'split_seq': self._split_seq,
        }

    @classmethod
    def from_state(cls, state: dict, lines, tax_rate=Decimal('0.13'), default_tip_percentage=Decimal('15'),
                   epsilon=PAYMENT_EPSILON, catalog=None) -> 'CheckoutSession':
        """
        Rebuild a checkout from stored state on top of the order's current lines.

        Items added to the order since the state was saved simply show up;
        courtesy toggles made during the checkout are re-applied.
        """
        overrides = {item_id: flag for item_id, flag in state.get('courtesy_overrides', [])}
        lines = [
            replace(line, is_courtesy=overrides[line.id]) if line.id in overrides else line
            for line in lines
        ]
        checkout = cls(state['order_id'], lines, tax_rate=tax_rate,
                       default_tip_percentage=default_tip_percentage, epsilon=epsilon, catalog=catalog)
        checkout.step = state['step']
        checkout.is_courtesy = state['is_courtesy']
        checkout.is_on_hold = state['is_on_hold']
        checkout.disable_receipt_print = state['disable_receipt_print']
        checkout.staged_preset_id = state.get('staged_preset_id')
        checkout.staged_coupon_code = state.get('staged_coupon_code')
        checkout.staged_manual_amount = Decimal(state['staged_manual_amount'])
        if state.get('applied_preset'):
            checkout.applied_preset = DiscountRule.from_dict(state['applied_preset'])
        checkout.applied_manual_amount = Decimal(state['applied_manual_amount'])
        checkout.tip_mode = state['tip_mode']
        checkout.tip_percentage = None if state.get('tip_percentage') is None else Decimal(state['tip_percentage'])
        checkout.tip_manual_amount = Decimal(state['tip_manual_amount'])
        checkout.payment_strategy = state['payment_strategy']
        checkout.payment_method = state.get('payment_method')
        checkout.dte = DteInfo.from_dict(state.get('dte')) or DteInfo()
        checkout.per_split_dte = bool(state.get('per_split_dte'))
        checkout.split_type = state.get('split_type')
        checkout.splits = [SplitState.from_dict(s) for s in state.get('splits', [])]
        checkout._split_seq = state.get('split_seq', len(checkout.splits))
        checkout.recompute_totals()
        return checkout

    def to_dict(self) -> dict:
        """State plus derived values, for API responses."""
        data = self.to_state()
        data['lines'] = [line.to_dict() for line in self.lines]
        data['totals'] = self.totals.to_dict()
        data['paid_total'] = str(self.paid_total)
        data['remaining_balance'] = str(self.remaining_balance)
        data['covered_item_ids'] = sorted(self.covered_item_ids, key=str)
        data['blocking_reasons'] = [err.to_dict() for err in self.validate_finalization()]
        data['can_finalize'] = not data['blocking_reasons']
        return data

    # ------------------------------------------------------------------
    # Event dispatch
    # ------------------------------------------------------------------

    def dispatch(self, event: str, payload: Optional[dict] = None) -> 'CheckoutSession':
        """Apply a named user event. Unknown events are rejected."""
        payload = payload or {}
        handlers = {
            'next_step': lambda p: self.next_step(),
            'previous_step': lambda p: self.previous_step(),
            'set_order_flags': lambda p: self.set_order_flags(
                is_courtesy=p.get('is_courtesy'),
                is_on_hold=p.get('is_on_hold'),
                disable_receipt_print=p.get('disable_receipt_print')),
            'toggle_item_courtesy': lambda p: self.toggle_item_courtesy(p['item_id']),
            'stage_discount': lambda p: self.stage_discount(
                preset_id=p.get('preset_id'),
                coupon_code=p.get('coupon_code'),
                manual_amount=p.get('manual_amount', ZERO)),
            'apply_discounts': lambda p: self.apply_discounts(),
            'clear_discounts': lambda p: self.clear_discounts(),
            'set_tip': lambda p: self.set_tip(p.get('mode', TipMode.DEFAULT), p.get('percentage'), p.get('amount')),
            'set_payment': lambda p: self.set_payment(
                strategy=p.get('strategy'),
                payment_method=p.get('payment_method'),
                dte=p.get('dte'),
                per_split_dte=p.get('per_split_dte')),
            'configure_equal_split': lambda p: self.configure_equal_split(int(p['ways'])),
            'add_item_split': lambda p: self.add_item_split(p['item_ids'], p.get('payment_method')),
            'add_guest_splits': lambda p: self.add_guest_splits(),
            'update_split': lambda p: self.update_split(
                p['split_id'],
                amount_to_pay=p.get('amount_to_pay'),
                payment_method=p.get('payment_method'),
                dte=p.get('dte'),
                item_ids=p.get('item_ids')),
            'remove_split': lambda p: self.remove_split(p['split_id']),
            'pay_split': lambda p: self.pay_split(p['split_id']),
        }
        handler = handlers.get(event)
        if handler is None:
            raise BusinessLogicError(f'Evento de checkout desconocido: {event}')
        try:
            handler(payload)
        except KeyError as e:
            raise BusinessLogicError(f'Falta el campo requerido {e} para el evento {event}')
        except (ValueError, ArithmeticError, TypeError):
            # Malformed numbers in the payload (decimal.InvalidOperation is an ArithmeticError)
            raise BusinessLogicError(f'Datos inválidos para el evento {event}')
        return self

    # ------------------------------------------------------------------
    # Navigation
    # ------------------------------------------------------------------

    def available_steps(self) -> Tuple[str, ...]:
        if self.payment_strategy == PaymentStrategy.SPLIT:
            return CheckoutStep.ORDER
        return CheckoutStep.ORDER[:-1]

    def next_step(self) -> str:
        steps = self.available_steps()
        index = steps.index(self.step) if self.step in steps else len(steps) - 1
        if index + 1 >= len(steps):
            raise InvalidTransitionError('No hay un paso siguiente en el checkout')
        self.step = steps[index + 1]
        return self.step

    def previous_step(self) -> str:
        index = CheckoutStep.ORDER.index(self.step)
        if index == 0:
            raise InvalidTransitionError('Ya está en el primer paso del checkout')
        self.step = CheckoutStep.ORDER[index - 1]
        return self.step

    # ------------------------------------------------------------------
    # Courtesy
    # ------------------------------------------------------------------

    def set_order_flags(self, is_courtesy=None, is_on_hold=None, disable_receipt_print=None) -> None:
        if is_courtesy is not None and bool(is_courtesy) != self.is_courtesy:
            self._ensure_no_paid_splits()
            self.is_courtesy = bool(is_courtesy)
        if is_on_hold is not None:
            self.is_on_hold = bool(is_on_hold)
        if disable_receipt_print is not None:
            self.disable_receipt_print = bool(disable_receipt_print)
        self.recompute_totals()

    def toggle_item_courtesy(self, item_id) -> CheckoutLine:
        self._ensure_no_paid_splits()
        for index, line in enumerate(self.lines):
            if line.id == item_id:
                if not is_billable(line):
                    raise BusinessLogicError(f'El ítem "{line.name}" está cancelado')
                self.lines[index] = replace(line, is_courtesy=not line.is_courtesy)
                self.recompute_totals()
                return self.lines[index]
        raise NotFoundError(f'Ítem {item_id} no pertenece a la orden')

    # ------------------------------------------------------------------
    # Discounts and tip
    # ------------------------------------------------------------------

    def stage_discount(self, preset_id=None, coupon_code=None, manual_amount=ZERO) -> None:
        """Record the discount the user entered; nothing changes until applied."""
        try:
            manual = to_decimal(manual_amount)
            negative = manual < 0
        except (ArithmeticError, ValueError):
            raise InvalidDiscountError(f'Monto de descuento inválido: {manual_amount}')
        if negative:
            raise InvalidDiscountError('El descuento manual no puede ser negativo')
        self.staged_preset_id = preset_id
        self.staged_coupon_code = (coupon_code or '').strip() or None
        self.staged_manual_amount = manual

    def apply_discounts(self) -> None:
        """
        Confirm the staged discounts.

        A coupon takes precedence over a preset id. If the lookup misses,
        nothing staged is applied and StaleDiscountError is raised.
        """
        self._ensure_no_paid_splits()
        rule = None
        if self.staged_coupon_code:
            rule = self.catalog.find_rule_by_coupon(self.staged_coupon_code) if self.catalog else None
            if rule is None:
                logger.info(f"[CHECKOUT] Order {self.order_id}: coupon '{self.staged_coupon_code}' not found")
                raise StaleDiscountError(self.staged_coupon_code)
        elif self.staged_preset_id is not None:
            rule = self.catalog.get_rule(self.staged_preset_id) if self.catalog else None
            if rule is None:
                logger.info(f"[CHECKOUT] Order {self.order_id}: preset {self.staged_preset_id} not found")
                raise StaleDiscountError(self.staged_preset_id)

        if rule is not None and not (ZERO <= rule.percentage <= Decimal('100')):
            raise InvalidDiscountError(f'Porcentaje inválido en el descuento "{rule.name}"')

        self.applied_preset = rule
        self.applied_manual_amount = self.staged_manual_amount
        self.recompute_totals()

    def clear_discounts(self) -> None:
        self._ensure_no_paid_splits()
        self.staged_preset_id = None
        self.staged_coupon_code = None
        self.staged_manual_amount = ZERO
        self.applied_preset = None
        self.applied_manual_amount = ZERO
        self.recompute_totals()

    def set_tip(self, mode: str, percentage=None, amount=None) -> None:
        if mode not in TipMode.ALL:
            raise BusinessLogicError(f'Modo de propina inválido: {mode}')
        self._ensure_no_paid_splits()
        if mode == TipMode.PERCENTAGE:
            pct = to_decimal(percentage)
            if pct < 0:
                raise BusinessLogicError('El porcentaje de propina no puede ser negativo')
            self.tip_percentage = pct
        if mode == TipMode.MANUAL:
            tip = to_decimal(amount)
            if tip < 0:
                raise BusinessLogicError('La propina no puede ser negativa')
            self.tip_manual_amount = tip
        self.tip_mode = mode
        self.recompute_totals()

    # ------------------------------------------------------------------
    # Payment configuration
    # ------------------------------------------------------------------

    def set_payment(self, strategy=None, payment_method=None, dte=None, per_split_dte=None) -> None:
        if strategy is not None:
            if strategy not in (PaymentStrategy.FULL, PaymentStrategy.SPLIT):
                raise BusinessLogicError(f'Estrategia de pago inválida: {strategy}')
            if strategy == PaymentStrategy.FULL and self.paid_splits:
                raise BusinessLogicError('Ya hay cuentas pagadas; no se puede volver a pago completo')
            self.payment_strategy = strategy
            if strategy == PaymentStrategy.FULL:
                self.splits = []
                self.split_type = None
                if self.step == CheckoutStep.SPLITS:
                    self.step = CheckoutStep.PAYMENT
        if payment_method is not None:
            self.payment_method = _validate_payment_method(payment_method)
        if dte is not None:
            self.dte = DteInfo.from_dict(dte)
        if per_split_dte is not None:
            self.per_split_dte = bool(per_split_dte)
        self.recompute_totals()

    def configure_equal_split(self, ways: int) -> List[SplitState]:
        """Divide the order into `ways` equal shares (paid equal shares are kept)."""
        self._ensure_split_strategy(SplitType.EQUAL)
        paid = self.paid_splits
        if ways < 2:
            raise BusinessLogicError('La cuenta debe dividirse en al menos 2 partes')
        if ways < len(paid):
            raise BusinessLogicError(f'Ya hay {len(paid)} partes pagadas')
        self.split_type = SplitType.EQUAL
        self.splits = list(paid)
        taken = {s.share_number for s in paid}
        share_numbers = [n for n in range(1, ways + 1) if n not in taken][:ways - len(paid)]
        for share_number in share_numbers:
            self.splits.append(SplitState(
                id=self._next_split_id(), split_type=SplitType.EQUAL,
                share_number=share_number, payment_method=self.payment_method
            ))
        self.recompute_totals()
        return self.splits

    def add_item_split(self, item_ids, payment_method=None) -> SplitState:
        self._ensure_split_strategy(SplitType.BY_ITEM)
        item_ids = self._validate_split_items(item_ids)
        split = SplitState(
            id=self._next_split_id(), split_type=SplitType.BY_ITEM,
            covered_item_ids=item_ids,
            payment_method=_validate_payment_method(payment_method) if payment_method else self.payment_method
        )
        self.split_type = SplitType.BY_ITEM
        self.splits.append(split)
        self.recompute_totals()
        return split

    def add_guest_splits(self) -> List[SplitState]:
        """One itemized split per assigned guest, over the items not yet paid."""
        self._ensure_split_strategy(SplitType.BY_CUSTOMER_BILL)
        covered = self.covered_item_ids
        groups: Dict[str, list] = {}
        for line in self.lines:
            if is_billable(line) and line.id not in covered:
                groups.setdefault(line.assigned_guest or UNASSIGNED_GUEST, []).append(line.id)
        if not groups:
            raise BusinessLogicError('No quedan ítems pendientes de pago')

        self.split_type = SplitType.BY_CUSTOMER_BILL
        self.splits = list(self.paid_splits)
        for guest, ids in groups.items():
            self.splits.append(SplitState(
                id=self._next_split_id(), split_type=SplitType.BY_CUSTOMER_BILL,
                covered_item_ids=tuple(ids), guest=guest, payment_method=self.payment_method
            ))
        self.recompute_totals()
        return self.splits

    def update_split(self, split_id, amount_to_pay=None, payment_method=None, dte=None, item_ids=None) -> SplitState:
        split = self._get_split(split_id)
        if split.is_paid:
            raise BusinessLogicError('Esta cuenta ya fue pagada y no puede modificarse')
        if item_ids is not None:
            if not split.is_itemized:
                raise BusinessLogicError('Solo las cuentas por ítem tienen ítems seleccionados')
            split.covered_item_ids = self._validate_split_items(item_ids)
        if payment_method is not None:
            split.payment_method = _validate_payment_method(payment_method)
        if dte is not None:
            split.dte = DteInfo.from_dict(dte)
        self.recompute_totals()
        if amount_to_pay is not None:
            amount = to_decimal(amount_to_pay)
            if amount < 0:
                raise BusinessLogicError('El monto a pagar no puede ser negativo')
            if amount > split.amount_due + self.epsilon:
                raise OverpaymentError(amount, split.amount_due)
            # Covered items can't be charged again, so itemized splits pay in full
            if split.is_itemized and amount < split.amount_due - self.epsilon:
                raise UnderfundedSplitError(amount, split.amount_due)
            split.amount_to_pay_override = amount
        return split

    def remove_split(self, split_id) -> None:
        split = self._get_split(split_id)
        if split.is_paid:
            raise BusinessLogicError('Esta cuenta ya fue pagada y no puede eliminarse')
        self.splits.remove(split)
        if not self.splits:
            self.split_type = None
        self.recompute_totals()

    def pay_split(self, split_id) -> SplitState:
        """Register a split as paid; it is frozen from here on."""
        split = self._get_split(split_id)
        if split.is_paid:
            raise BusinessLogicError('Esta cuenta ya fue pagada')
        self.recompute_totals()

        amount = split.amount_to_pay
        if amount > split.amount_due + self.epsilon:
            raise OverpaymentError(amount, split.amount_due)
        if split.is_itemized and amount < split.amount_due - self.epsilon:
            raise UnderfundedSplitError(amount, split.amount_due)
        if amount <= 0:
            raise BusinessLogicError('El monto a pagar debe ser mayor a 0')
        if not split.payment_method:
            raise MissingPaymentMethodError('Seleccione un método de pago para esta cuenta')
        if self.per_split_dte and split.dte and split.dte.missing_fields():
            raise IncompleteFiscalInfoError(_fiscal_message(split.dte.missing_fields()))
        if split.is_itemized:
            overlap = set(split.covered_item_ids) & self.covered_item_ids
            if overlap:
                raise ItemAlreadyCoveredError(sorted(overlap, key=str))

        split.is_paid = True
        split.amount_paid = amount
        logger.info(f"[CHECKOUT] Order {self.order_id}: split {split.id} paid {amount} ({split.payment_method})")
        self.recompute_totals()
        return split

    # ------------------------------------------------------------------
    # Totals
    # ------------------------------------------------------------------

    def recompute_totals(self) -> OrderTotals:
        """Single recomputation transition: order totals, then every open split."""
        untipped = calculate_totals(
            self.lines, self.is_courtesy, self.applied_preset, self.applied_manual_amount, ZERO, self.tax_rate
        )
        tip = ZERO
        if not self.is_courtesy:
            tip = resolve_tip(
                self.tip_mode, untipped.taxable_base,
                percentage=self.tip_percentage,
                manual_amount=self.tip_manual_amount,
                default_percentage=self.default_tip_percentage
            )
        self.totals = calculate_totals(
            self.lines, self.is_courtesy, self.applied_preset, self.applied_manual_amount, tip, self.tax_rate
        )
        self._reprice_splits()
        return self.totals

    def _reprice_splits(self) -> None:
        open_splits = [s for s in self.splits if not s.is_paid]
        if not open_splits:
            return

        if self.split_type == SplitType.EQUAL:
            due = equal_share_due(self.totals.total_amount, self.paid_total, len(open_splits))
            for split in open_splits:
                split.amount_due = due
            return

        covered = self.covered_item_ids
        uncovered_subtotal = charged_subtotal(line for line in self.lines if line.id not in covered)
        consumed_discount = sum(
            (s.allocation.split_discount for s in self.paid_splits if s.allocation), ZERO
        )
        pool = max(self.totals.discount_amount - consumed_discount, ZERO)
        for split in open_splits:
            selected = [line for line in self.lines if line.id in split.covered_item_ids]
            split.allocation = allocate_split(
                selected, self.totals, self.totals.tip_amount, uncovered_subtotal, self.tax_rate,
                discount_pool=pool
            )
            split.amount_due = split.allocation.split_total

    @property
    def paid_splits(self) -> List[SplitState]:
        return [s for s in self.splits if s.is_paid]

    @property
    def paid_total(self) -> Decimal:
        return sum((s.amount_paid for s in self.paid_splits), ZERO)

    @property
    def remaining_balance(self) -> Decimal:
        return max(self.totals.total_amount - self.paid_total, ZERO)

    @property
    def covered_item_ids(self) -> set:
        covered = set()
        for split in self.paid_splits:
            covered.update(split.covered_item_ids)
        return covered

    # ------------------------------------------------------------------
    # Finalization
    # ------------------------------------------------------------------

    def validate_finalization(self) -> List[PosError]:
        """Every reason that currently blocks finalization (empty when ready)."""
        if self.is_courtesy or self.is_on_hold:
            return []

        errors: List[PosError] = []
        if self.payment_strategy == PaymentStrategy.FULL:
            if self.totals.total_amount > self.epsilon and not self.payment_method:
                errors.append(MissingPaymentMethodError('Seleccione un método de pago'))
            if self.dte.missing_fields():
                errors.append(IncompleteFiscalInfoError(_fiscal_message(self.dte.missing_fields())))
            return errors

        for split in self.splits:
            if not split.is_paid and split.amount_to_pay > split.amount_due + self.epsilon:
                errors.append(OverpaymentError(split.amount_to_pay, split.amount_due))
        if self.paid_total < self.totals.total_amount - self.epsilon:
            errors.append(UnderfundedSplitError(self.paid_total, self.totals.total_amount))
        if self.per_split_dte:
            for split in self.paid_splits:
                if split.dte and split.dte.missing_fields():
                    errors.append(IncompleteFiscalInfoError(
                        f'Cuenta {split.id}: ' + _fiscal_message(split.dte.missing_fields())
                    ))
        elif self.dte.missing_fields():
            errors.append(IncompleteFiscalInfoError(_fiscal_message(self.dte.missing_fields())))
        return errors

    def can_finalize(self) -> bool:
        return not self.validate_finalization()

    def finalize(self) -> str:
        """Validate and return the order status the checkout leads to."""
        errors = self.validate_finalization()
        if errors:
            raise errors[0]
        if self.is_on_hold:
            return 'on_hold'
        return 'paid'

    # ------------------------------------------------------------------
    # Helpers
    # ------------------------------------------------------------------

    def _next_split_id(self) -> str:
        self._split_seq += 1
        return f'split-{self._split_seq}'

    def _get_split(self, split_id) -> SplitState:
        for split in self.splits:
            if split.id == split_id:
                return split
        raise NotFoundError(f'Cuenta {split_id} no encontrada')

    def _ensure_no_paid_splits(self) -> None:
        if self.paid_splits:
            raise BusinessLogicError('Ya hay cuentas pagadas; no se pueden cambiar descuentos, propina ni cortesías')

    def _ensure_split_strategy(self, split_type: str) -> None:
        if self.payment_strategy != PaymentStrategy.SPLIT:
            raise BusinessLogicError('Seleccione pago dividido antes de configurar cuentas')
        if self.paid_splits and self.split_type != split_type:
            raise BusinessLogicError('Ya hay cuentas pagadas con otra forma de división')

    def _validate_split_items(self, item_ids) -> tuple:
        if not item_ids:
            raise BusinessLogicError('Seleccione al menos un ítem')
        lines = {line.id: line for line in self.lines}
        for item_id in item_ids:
            line = lines.get(item_id)
            if line is None:
                raise NotFoundError(f'Ítem {item_id} no pertenece a la orden')
            if not is_billable(line):
                raise BusinessLogicError(f'El ítem "{line.name}" está cancelado')
        overlap = set(item_ids) & self.covered_item_ids
        if overlap:
            raise ItemAlreadyCoveredError(sorted(overlap, key=str))
        return tuple(dict.fromkeys(item_ids))


def _validate_payment_method(payment_method: str) -> str:
    method = (payment_method or '').strip().lower()
    if method not in PAYMENT_METHODS:
        raise BusinessLogicError(f'Método de pago inválido: {payment_method}')
    return method


def _fiscal_message(missing: List[str]) -> str:
    labels = {'nit': 'NIT', 'nrc': 'NRC', 'customer_name': 'nombre del cliente'}
    return 'Crédito fiscal requiere: ' + ', '.join(labels[m] for m in missing)


def _stored_amount(value) -> Decimal:
    """Round to the scale of the Numeric(18, 6) amount columns."""
    return to_decimal(value).quantize(STORED_AMOUNT_EXP, rounding=ROUND_HALF_UP)


# =====================================================
# PERSISTENCE
# =====================================================

def _checkout_settings(config) -> dict:
    return {
        'tax_rate': to_decimal(config.get('IVA_RATE', Decimal('0.13'))),
        'default_tip_percentage': to_decimal(config.get('DEFAULT_TIP_PERCENTAGE', Decimal('15'))),
        'epsilon': to_decimal(config.get('PAYMENT_EPSILON', PAYMENT_EPSILON)),
    }


def _get_open_order(session: Session, order_id: int):
    from tabletop.models import Order
    order = session.query(Order).filter(Order.id == order_id).first()
    if not order:
        raise NotFoundError(f'Orden {order_id} no encontrada')
    if order.is_terminal:
        raise InvalidTransitionError(f'La orden {order_id} ya está cerrada ({order.status})')
    return order


def start_checkout(session: Session, order_id: int, config) -> CheckoutSession:
    """Open (or resume) the checkout of an order and mark it pending payment."""
    from tabletop.models import CheckoutDraft, OrderStatus
    from tabletop.services.discount_service import DiscountCatalog

    order = _get_open_order(session, order_id)
    draft = session.query(CheckoutDraft).filter(CheckoutDraft.order_id == order_id).first()
    if draft:
        return load_checkout(session, order_id, config)

    if not any(is_billable(item) for item in order.items):
        raise BusinessLogicError('La orden no tiene ítems para cobrar')

    checkout = CheckoutSession.from_order(order, catalog=DiscountCatalog(session), **_checkout_settings(config))
    session.add(CheckoutDraft(order_id=order_id, state=checkout.to_state()))
    if order.status == OrderStatus.OPEN.value:
        order.status = OrderStatus.PENDING_PAYMENT.value
    session.commit()
    logger.info(f"[CHECKOUT] Order {order_id}: checkout started")
    return checkout


def load_checkout(session: Session, order_id: int, config) -> CheckoutSession:
    from tabletop.models import CheckoutDraft
    from tabletop.services.discount_service import DiscountCatalog

    order = _get_open_order(session, order_id)
    draft = session.query(CheckoutDraft).filter(CheckoutDraft.order_id == order_id).first()
    if not draft:
        raise NotFoundError(f'La orden {order_id} no tiene un checkout en curso')
    lines = [CheckoutLine.from_item(item) for item in order.items]
    return CheckoutSession.from_state(draft.state, lines, catalog=DiscountCatalog(session), **_checkout_settings(config))


def save_checkout(session: Session, checkout: CheckoutSession) -> None:
    from tabletop.models import CheckoutDraft

    draft = session.query(CheckoutDraft).filter(CheckoutDraft.order_id == checkout.order_id).first()
    if not draft:
        raise NotFoundError(f'La orden {checkout.order_id} no tiene un checkout en curso')
    draft.state = checkout.to_state()
    session.commit()


def apply_checkout_event(session: Session, order_id: int, event: str, payload: dict, config) -> CheckoutSession:
    """Load, dispatch one event, save. Nothing is saved if the event fails."""
    checkout = load_checkout(session, order_id, config)
    try:
        checkout.dispatch(event, payload)
    except PosError as e:
        session.rollback()
        logger.info(f"[CHECKOUT] Order {order_id}: event '{event}' rejected: {e.message}")
        raise
    save_checkout(session, checkout)
    return checkout


def discard_checkout(session: Session, order_id: int) -> None:
    """Abandon the checkout; the order goes back to open."""
    from tabletop.models import CheckoutDraft, OrderStatus

    order = _get_open_order(session, order_id)
    draft = session.query(CheckoutDraft).filter(CheckoutDraft.order_id == order_id).first()
    if draft:
        if any(s.get('is_paid') for s in draft.state.get('splits', [])):
            raise BusinessLogicError('Hay cuentas pagadas; el checkout no puede descartarse')
        session.delete(draft)
    if order.status == OrderStatus.PENDING_PAYMENT.value:
        order.status = OrderStatus.OPEN.value
    session.commit()


def finalize_checkout(session: Session, order_id: int, config):
    """
    Finalize the checkout and write the result to the order.

    Raises the first blocking reason (PosError subclass) when the checkout is
    not ready; the order is left untouched in that case.
    """
    from tabletop.models import CheckoutDraft, PaymentSplit

    checkout = load_checkout(session, order_id, config)
    order = _get_open_order(session, order_id)

    try:
        target_status = checkout.finalize()

        courtesy_by_id = {line.id: line.is_courtesy for line in checkout.lines}
        for item in order.items:
            if item.id in courtesy_by_id:
                item.is_courtesy = courtesy_by_id[item.id]

        totals = checkout.totals
        order.is_courtesy = checkout.is_courtesy
        order.is_on_hold = checkout.is_on_hold
        order.disable_receipt_print = checkout.disable_receipt_print
        order.applied_preset = checkout.applied_preset.to_dict() if checkout.applied_preset else None
        order.manual_discount_amount = _stored_amount(checkout.applied_manual_amount)
        order.subtotal = _stored_amount(totals.subtotal)
        order.discount_amount = _stored_amount(totals.discount_amount)
        order.applied_preset_discount_value = _stored_amount(totals.applied_preset_discount_value)
        order.applied_manual_discount_value = _stored_amount(totals.applied_manual_discount_value)
        order.tax_amount = _stored_amount(totals.tax_amount)
        order.tip_amount = _stored_amount(totals.tip_amount)
        order.total_amount = _stored_amount(totals.total_amount)

        if checkout.payment_strategy == PaymentStrategy.SPLIT and not checkout.is_courtesy:
            order.payment_split_type = checkout.split_type or 'none'
            order.payment_method = None
            # Rewritten as a whole: splits carried over from a held checkout are included
            payment_splits = []
            for split in checkout.paid_splits:
                dte = split.dte if checkout.per_split_dte and split.dte else None
                payment_splits.append(PaymentSplit(
                    split_type=split.split_type,
                    share_number=split.share_number,
                    covered_item_ids=list(split.covered_item_ids) or None,
                    allocation=split.allocation.to_dict() if split.allocation else None,
                    amount_due=_stored_amount(split.amount_due),
                    amount_paid=_stored_amount(split.amount_paid),
                    payment_method=split.payment_method,
                    dte_type=dte.dte_type if dte else None,
                    dte_nit=dte.nit if dte else None,
                    dte_nrc=dte.nrc if dte else None,
                    dte_customer_name=dte.customer_name if dte else None
                ))
            order.payment_splits = payment_splits
        else:
            order.payment_split_type = 'none'
            order.payment_method = checkout.payment_method

        if not checkout.per_split_dte or checkout.payment_strategy == PaymentStrategy.FULL:
            order.dte_type = checkout.dte.dte_type
            order.dte_nit = checkout.dte.nit or None
            order.dte_nrc = checkout.dte.nrc or None
            order.dte_customer_name = checkout.dte.customer_name or None

        order.status = target_status
        session.query(CheckoutDraft).filter(CheckoutDraft.order_id == order_id).delete()
        session.commit()
    except PosError:
        session.rollback()
        raise
    except Exception as e:
        session.rollback()
        raise Exception(f'Error al finalizar el checkout: {str(e)}')

    logger.info(f"[CHECKOUT] Order {order_id}: finalized as {target_status}, total {order.total_amount}")
    return order
