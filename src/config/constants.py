from enum import Enum


class UserRole(str, Enum):
    CUSTOMER = "CUSTOMER"
    ADMIN = "ADMIN"


class PaymentStatus(str, Enum):
    PENDING = "pending"
    PAID = "paid"
    FAILED = "failed"


class PaymentProvider(str, Enum):
    MPGS = "mpgs"


class ConfirmationSource(str, Enum):
    RETURN = "return"
    CALLBACK = "callback"
    CANCEL = "cancel"


class MPGSOperation(str, Enum):
    CREATE_CHECKOUT_SESSION = "CREATE_CHECKOUT_SESSION"
    INITIATE_CHECKOUT = "INITIATE_CHECKOUT"
    AUTHORIZE = "AUTHORIZE"
    CAPTURE = "CAPTURE"
    REFUND = "REFUND"
    PAY = "PAY"


PAYMENT_METHOD_CARD = "card"

# Recorded by the success callback when the client sends no indicator
DEFAULT_CALLBACK_INDICATOR = "SUCCESS"

# Gateway explanations that mean "this payload shape is not accepted here"
RETRYABLE_SHAPE_PATTERN = r"unsupported|invalid|missing|not.*allowed|unexpected"

HISTORY_NOTE_TEMPLATE = "Payment status automatically updated to paid via MPGS {source}"
