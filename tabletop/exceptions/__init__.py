"""Custom exceptions for the Tabletop POS application."""

class PosError(Exception):
    """Base exception for all application errors."""
    code = 'internal_error'

    def __init__(self, message="An internal error occurred", status_code=500, payload=None):
        super().__init__(message)
        self.message = message
        self.status_code = status_code
        self.payload = payload

    def to_dict(self):
        rv = dict(self.payload or ())
        rv['message'] = self.message
        rv['status'] = 'error'
        rv['code'] = self.code
        return rv

class BusinessLogicError(PosError):
    """Exception raised for business logic violations."""
    code = 'business_rule'

    def __init__(self, message, status_code=400, payload=None):
        super().__init__(message, status_code, payload)

class NotFoundError(PosError):
    """Exception raised when a resource is not found."""
    code = 'not_found'

    def __init__(self, message="Resource not found", payload=None):
        super().__init__(message, 404, payload)

class InvalidDiscountError(BusinessLogicError):
    """Manual discount negative or preset percentage outside [0, 100]."""
    code = 'invalid_discount'

class StaleDiscountError(PosError):
    """Coupon code or preset id did not resolve; nothing was applied."""
    code = 'stale_discount'

    def __init__(self, reference, payload=None):
        super().__init__(f'Descuento o cupón no encontrado: {reference}', 404, payload)
        self.reference = reference

class OverpaymentError(BusinessLogicError):
    """Raised when a split's amount to pay exceeds what it owes."""
    code = 'overpayment'

    def __init__(self, amount_to_pay, amount_due):
        message = f'El monto a pagar (${amount_to_pay:.2f}) supera el monto adeudado (${amount_due:.2f})'
        super().__init__(message, payload={'amount_to_pay': str(amount_to_pay), 'amount_due': str(amount_due)})

class IncompleteFiscalInfoError(BusinessLogicError):
    """Crédito fiscal selected without NIT, NRC and customer name."""
    code = 'incomplete_fiscal_info'

class UnderfundedSplitError(BusinessLogicError):
    """Paid splits don't reach the grand total."""
    code = 'underfunded_split'

    def __init__(self, paid_total, grand_total):
        message = f'Lo pagado (${paid_total:.2f}) no cubre el total (${grand_total:.2f})'
        super().__init__(message, payload={'paid_total': str(paid_total), 'grand_total': str(grand_total)})

class MissingPaymentMethodError(BusinessLogicError):
    """No payment method chosen for a non-zero payment."""
    code = 'missing_payment_method'

class ItemAlreadyCoveredError(BusinessLogicError):
    """Item already belongs to a paid split."""
    code = 'item_already_covered'

    def __init__(self, item_ids):
        ids = ', '.join(str(i) for i in item_ids)
        super().__init__(f'Los ítems {ids} ya fueron pagados en otra cuenta', status_code=409)
        self.item_ids = list(item_ids)

class InvalidTransitionError(BusinessLogicError):
    """Checkout step or order status transition not allowed."""
    code = 'invalid_transition'

    def __init__(self, message):
        super().__init__(message, status_code=409)
