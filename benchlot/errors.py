"""Error taxonomy for the API.

Service functions raise these; create_app() registers a handler that
renders them as {"error": message} with the matching status code.

- ValidationError      400  missing identifiers, malformed cart lines
- PaymentNotCompleted  400  payment intent has not succeeded
- NotFoundError        404  user / account / order absent
- ProviderError        502  Stripe failure (400 for Stripe-side validation)
"""

import stripe


class BenchlotError(Exception):
    status_code = 500

    def __init__(self, message, status_code=None):
        super().__init__(message)
        self.message = message
        if status_code is not None:
            self.status_code = status_code

    def to_dict(self):
        return {"error": self.message}


class ValidationError(BenchlotError):
    status_code = 400


class PaymentNotCompleted(BenchlotError):
    status_code = 400

    def __init__(self, message="Payment not successful", intent_status=None):
        super().__init__(message)
        self.intent_status = intent_status


class NotFoundError(BenchlotError):
    status_code = 404


class ProviderError(BenchlotError):
    status_code = 502

    @classmethod
    def from_stripe(cls, exc):
        """Wrap a stripe.StripeError, keeping the provider's message."""
        message = getattr(exc, "user_message", None) or str(exc) or "Stripe request failed"
        status = 400 if isinstance(exc, stripe.InvalidRequestError) else 502
        return cls(message, status_code=status)
