"""
Ciclo de vida da inscrição: NonExistent -> (token) -> Active -> NonExistent.

Pedidos de inscrição não gravam nada: o estado pendente vive só no token de
verificação assinado. O registro Active nasce quando o token é apresentado
(ou quando um provedor de identidade confiável garante o e-mail) e some
quando um token de descadastro válido é apresentado.
"""
import logging
from enum import Enum
from typing import Optional

from pydantic import BaseModel

from collegenews.errors import DuplicateKeyError, SendError, ValidationError
from collegenews.notifier.news_notifier import Notifier
from collegenews.storage.models import Subscriber, SubscriberState
from collegenews.storage.repository import SubscriberRepository, normalize_email
from collegenews.subscriptions.tokens import TokenPurpose, TokenSigner
from collegenews.subscriptions.validators import CaptchaVerifier, MxChecker, email_domain, is_valid_email
from collegenews.utils.tz_utils import utc_now

logger = logging.getLogger(__name__)


class OutcomeStatus(str, Enum):
    verification_sent = "verification_sent"
    already_subscribed = "already_subscribed"
    subscribed = "subscribed"
    unsubscribed = "unsubscribed"


class SubscriptionOutcome(BaseModel):
    status: OutcomeStatus
    email: str
    message: str


MESSAGES = {
    OutcomeStatus.verification_sent: "Check your inbox to confirm your subscription.",
    OutcomeStatus.already_subscribed: "Already subscribed.",
    OutcomeStatus.subscribed: "Subscription confirmed. Welcome aboard!",
    OutcomeStatus.unsubscribed: "You have been unsubscribed.",
}


def _outcome(status: OutcomeStatus, email: str) -> SubscriptionOutcome:
    return SubscriptionOutcome(status=status, email=email, message=MESSAGES[status])


class SubscriptionManager:
    """Único escritor dos registros de assinante."""

    def __init__(
        self,
        subscribers: SubscriberRepository,
        signer: TokenSigner,
        notifier: Notifier,
        captcha: CaptchaVerifier,
        mx_checker: Optional[MxChecker] = None,
    ):
        self.subscribers = subscribers
        self.signer = signer
        self.notifier = notifier
        self.captcha = captcha
        self.mx_checker = mx_checker  # None desliga a checagem de MX

    # ---------- Transições ----------
    def request_subscription(
        self,
        email: str,
        captcha_token: Optional[str] = None,
        remote_ip: Optional[str] = None,
    ) -> SubscriptionOutcome:
        """
        Valida o pedido e envia o link de confirmação.

        Levanta ValidationError (e-mail inválido, anti-bot, domínio sem MX)
        ou SendError se o e-mail de verificação não puder ser enviado.
        """
        email = normalize_email(email)
        if not is_valid_email(email):
            raise ValidationError("Please enter a valid email address.")
        if not self.captcha.verify(captcha_token, remote_ip):
            raise ValidationError("Bot check failed. Please try again.")
        if self.subscribers.is_active(email):
            return _outcome(OutcomeStatus.already_subscribed, email)
        if self.mx_checker is not None and not self.mx_checker.has_mx(email_domain(email)):
            raise ValidationError("That email domain cannot receive mail.")

        token = self.signer.sign(email, TokenPurpose.verify)
        self.notifier.send_verification(email, token)
        logger.info("Verification email sent to %s", email)
        return _outcome(OutcomeStatus.verification_sent, email)

    def verify(self, token: str) -> SubscriptionOutcome:
        """Levanta TokenError para token expirado/inválido/de outro propósito."""
        email = self.signer.verify(token, TokenPurpose.verify)
        return self._activate(email)

    def activate_trusted(self, email: str) -> SubscriptionOutcome:
        """E-mail já verificado por um provedor de identidade confiável."""
        email = normalize_email(email)
        if not is_valid_email(email):
            raise ValidationError("Please enter a valid email address.")
        return self._activate(email)

    def unsubscribe(self, token: str) -> SubscriptionOutcome:
        """Idempotente: apagar um registro inexistente não é erro."""
        email = self.signer.verify(token, TokenPurpose.unsubscribe)
        removed = self.subscribers.delete(email)
        logger.info("Unsubscribe for %s (record removed: %s)", email, removed)
        return _outcome(OutcomeStatus.unsubscribed, email)

    # ---------- Internos ----------
    def _activate(self, email: str) -> SubscriptionOutcome:
        existing = self.subscribers.find(email)
        if existing is not None:
            if existing.state == SubscriberState.active:
                return _outcome(OutcomeStatus.already_subscribed, email)
            # registro pendente legado: promove
            self.subscribers.delete(email)

        try:
            self.subscribers.insert(
                Subscriber(email=email, state=SubscriberState.active, created_at=utc_now().isoformat())
            )
        except DuplicateKeyError:
            # outra requisição ativou o mesmo endereço entre o find e o insert
            return _outcome(OutcomeStatus.already_subscribed, email)

        logger.info("Subscriber activated: %s", email)
        try:
            self.notifier.send_welcome(email)
        except SendError as e:
            # a inscrição já vale; só o boas-vindas se perdeu
            logger.warning("Welcome email failed for %s: %s", email, e)
        return _outcome(OutcomeStatus.subscribed, email)
