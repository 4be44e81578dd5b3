# news_notifier.py
"""
Notifier: e-mails de novidades, de verificação e de boas-vindas.

- Uma mensagem por destinatário (nunca um broadcast com todos em `To`),
  cada uma com o seu próprio link de descadastro assinado.
- Envios independentes em um pool de threads: a falha de um destinatário
  não impede os demais; cada resultado vira um SendResult.
- Métodos públicos principais:
    - render_news_text(items, unsubscribe_url)
    - render_news_html(items, unsubscribe_url)
    - notify(items, subscribers) -> List[SendResult]
    - send_verification(email, token)
    - send_welcome(email)
"""

from __future__ import annotations

from concurrent.futures import ThreadPoolExecutor
from typing import Any, Iterable, List, Optional
from urllib.parse import urlencode, urlparse
import html
import logging

from pydantic import BaseModel

from collegenews.errors import SendError
from collegenews.notifier.mailer import MailMessage
from collegenews.subscriptions.tokens import TokenPurpose, TokenSigner
from collegenews.utils.tz_utils import DEFAULT_TIMEZONE, iso_to_local_str

logger = logging.getLogger(__name__)

_MAX_SEND_WORKERS = 8

NEWS_SUBJECT = "College News Update 📰"
VERIFY_SUBJECT = "Confirm your subscription to College News Updates"
WELCOME_SUBJECT = "Welcome to College News Updates 🎓"


class SendResult(BaseModel):
    email: str
    ok: bool
    error: Optional[str] = None


class Notifier:
    """Compõe e envia os e-mails; não lê nem grava nos stores."""

    def __init__(
        self,
        mailer: Any,
        signer: TokenSigner,
        sender: str,
        public_base_url: str,
        max_workers: int = _MAX_SEND_WORKERS,
        tz_name: str = DEFAULT_TIMEZONE,
    ) -> None:
        """
        Parameters
        ----------
        mailer : objeto com send(MailMessage)
            Levanta exceção quando o envio falha.
        signer : TokenSigner
            Gera os tokens de descadastro embutidos em cada mensagem.
        sender : str
            Endereço `From`.
        public_base_url : str
            Base dos links de verificação/descadastro (ex.: https://news.example.org).
        """
        self.mailer = mailer
        self.signer = signer
        self.sender = sender
        self.public_base_url = public_base_url.rstrip("/")
        self.max_workers = max(1, max_workers)
        self.tz_name = tz_name

    @classmethod
    def from_settings(cls, settings, mailer: Any, signer: TokenSigner) -> "Notifier":
        return cls(
            mailer=mailer,
            signer=signer,
            sender=settings.mail_from or settings.smtp_user or "no-reply@localhost",
            public_base_url=settings.public_base_url,
            max_workers=settings.notify_workers,
            tz_name=settings.local_timezone,
        )

    # ---------- Helpers internos ----------
    @staticmethod
    def _get(item: Any, name: str, default: Any = None) -> Any:
        """Acessa campo tanto para dict quanto para objeto."""
        if isinstance(item, dict):
            return item.get(name, default)
        return getattr(item, name, default)

    @staticmethod
    def _host_from_link(link: Optional[str]) -> str:
        if not link:
            return ""
        host = urlparse(link).netloc or ""
        return host.replace("www.", "")

    def _action_url(self, path: str, token: str) -> str:
        return f"{self.public_base_url}/{path}?{urlencode({'token': token})}"

    def unsubscribe_url(self, email: str) -> str:
        return self._action_url("unsubscribe", self.signer.sign(email, TokenPurpose.unsubscribe))

    def verify_url(self, token: str) -> str:
        return self._action_url("verify", token)

    # ---------- Renderização ----------
    def render_news_text(self, items: List[Any], unsubscribe_url: str) -> str:
        lines = [
            f"{i}. {self._get(it, 'title')}\n{self._get(it, 'link')}"
            for i, it in enumerate(items, start=1)
        ]
        return (
            "\n\n".join(lines)
            + "\n\n--\nYou receive this because you subscribed to College News Updates.\n"
            + f"Unsubscribe: {unsubscribe_url}\n"
        )

    def render_news_html(self, items: List[Any], unsubscribe_url: str) -> str:
        """Tabela (role=presentation) com estilos inline, compatível com clientes de e-mail."""
        parts: List[str] = [
            "<div style='font-family:Segoe UI,Arial,sans-serif;font-size:14px;color:#212529'>"
            "<h2 style='margin:0 0 12px'>College News Update</h2>"
            f"<div style='margin:0 0 12px;color:#6c757d'>{len(items)} new item(s)</div>"
            "<table role='presentation' cellspacing='0' cellpadding='0' border='0' "
            "style='width:100%;border-collapse:collapse;margin:0 0 8px'>"
        ]
        for it in items:
            title = html.escape(self._get(it, "title") or "")
            link = html.escape(self._get(it, "link") or "#")
            host = self._host_from_link(self._get(it, "link"))
            seen = iso_to_local_str(self._get(it, "first_seen_at") or "", self.tz_name)
            parts.append(
                "<tr>"
                "<td valign='top' style='width:18px;padding:6px 6px 6px 0'>•</td>"
                "<td valign='top' style='padding:6px 0'>"
                f"<div style='margin:0 0 2px'><a href='{link}' style='color:#0d6efd;text-decoration:none;'>{title}</a></div>"
                f"<div style='font-size:12px;color:#6c757d'>{html.escape(host)}"
                f"{(' — ' + html.escape(seen)) if seen else ''}</div>"
                "</td>"
                "</tr>"
            )
        parts.append("</table>")
        parts.append(
            "<p style='font-size:12px;color:#6c757d;margin-top:16px'>"
            f"<a href='{html.escape(unsubscribe_url)}' style='color:#6c757d'>Unsubscribe</a></p>"
        )
        parts.append("</div>")
        return "".join(parts)

    def compose_news(self, items: List[Any], email: str) -> MailMessage:
        unsubscribe_url = self.unsubscribe_url(email)
        return MailMessage(
            sender=self.sender,
            to=email,
            subject=NEWS_SUBJECT,
            text=self.render_news_text(items, unsubscribe_url),
            html=self.render_news_html(items, unsubscribe_url),
        )

    # ---------- Envios ----------
    def _send_one(self, items: List[Any], email: str) -> SendResult:
        try:
            self.mailer.send(self.compose_news(items, email))
        except Exception as e:
            # falha de um destinatário fica registrada e não interrompe os outros
            logger.warning("Send failed for %s: %s", email, e)
            return SendResult(email=email, ok=False, error=str(e))
        return SendResult(email=email, ok=True)

    def notify(self, items: List[Any], subscribers: Iterable[Any]) -> List[SendResult]:
        """Envia uma mensagem por assinante; resultados na ordem dos assinantes."""
        emails = [self._get(s, "email") for s in subscribers]
        emails = [e for e in emails if e]
        if not items or not emails:
            return []

        with ThreadPoolExecutor(max_workers=min(len(emails), self.max_workers)) as ex:
            futures = [ex.submit(self._send_one, items, email) for email in emails]
            results = [fut.result() for fut in futures]

        sent = sum(1 for r in results if r.ok)
        logger.info("Notified %d/%d subscriber(s) about %d item(s)", sent, len(results), len(items))
        return results

    def send_verification(self, email: str, token: str) -> None:
        """Levanta SendError: quem pediu a inscrição precisa saber que o e-mail não saiu."""
        link = self.verify_url(token)
        minutes = int(self.signer.ttls[TokenPurpose.verify].total_seconds() // 60)
        text = (
            "Hi there,\n\n"
            "Please confirm your subscription to College News Updates by opening the link below.\n"
            f"{link}\n\n"
            f"The link expires in {minutes} minutes. If you did not ask for this, just ignore this email.\n"
        )
        message = MailMessage(
            sender=self.sender,
            to=email,
            subject=VERIFY_SUBJECT,
            text=text,
            html=(
                "<p>Hi there,</p>"
                "<p>Please confirm your subscription to College News Updates.</p>"
                f"<p><a href='{html.escape(link)}'>Confirm subscription</a></p>"
                f"<p style='color:#6c757d'>The link expires in {minutes} minutes.</p>"
            ),
        )
        self._deliver(message)

    def send_welcome(self, email: str) -> None:
        unsubscribe_url = self.unsubscribe_url(email)
        text = (
            "Hi there,\n"
            "Thank you for subscribing to College News Updates.\n"
            "From now on, you'll receive email notifications whenever new notices or announcements "
            "are posted on the official college website.\n"
            "We send messages only when there's something new — no spam.\n\n"
            f"Unsubscribe at any time: {unsubscribe_url}\n"
        )
        self._deliver(MailMessage(sender=self.sender, to=email, subject=WELCOME_SUBJECT, text=text))

    def _deliver(self, message: MailMessage) -> None:
        try:
            self.mailer.send(message)
        except SendError:
            raise
        except Exception as e:
            raise SendError(f"could not send to {message.to}: {e}") from e
