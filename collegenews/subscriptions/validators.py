import re
import logging
from typing import Optional

import requests
import dns.exception
import dns.resolver

logger = logging.getLogger(__name__)

# Suficiente para barrar lixo; quem prova o endereço é o e-mail de verificação.
EMAIL_REGEX = re.compile(r"^[A-Za-z0-9.!#$%&'*+/=?^_`{|}~-]+@[A-Za-z0-9](?:[A-Za-z0-9-]{0,61}[A-Za-z0-9])?(?:\.[A-Za-z0-9](?:[A-Za-z0-9-]{0,61}[A-Za-z0-9])?)+$")

RECAPTCHA_VERIFY_URL = "https://www.google.com/recaptcha/api/siteverify"


def is_valid_email(email: str) -> bool:
    if not email or len(email) > 254:
        return False
    return bool(EMAIL_REGEX.match(email))


def email_domain(email: str) -> str:
    return email.rsplit("@", 1)[-1].lower()


class MxChecker:
    def __init__(self, timeout: float = 5.0):
        self.timeout = timeout

    def has_mx(self, domain: str) -> bool:
        try:
            answers = dns.resolver.resolve(domain, "MX", lifetime=self.timeout)
        except (dns.resolver.NXDOMAIN, dns.resolver.NoAnswer, dns.resolver.NoNameservers) as e:
            logger.info("No MX for %s: %s", domain, e)
            return False
        except dns.exception.DNSException as e:
            logger.warning("MX lookup failed for %s: %s", domain, e)
            return False
        return len(answers) > 0


class CaptchaVerifier:
    """Checagem anti-bot no formato siteverify do reCAPTCHA."""

    TIMEOUT = 10

    def __init__(self, secret: Optional[str], verify_url: str = RECAPTCHA_VERIFY_URL, session: Optional[requests.Session] = None):
        self.secret = secret
        self.verify_url = verify_url
        self.session = session or requests.Session()
        if not secret:
            logger.warning("RECAPTCHA_SECRET não definido — checagem anti-bot desativada.")

    @property
    def enabled(self) -> bool:
        return bool(self.secret)

    def verify(self, token: Optional[str], remote_ip: Optional[str] = None) -> bool:
        if not self.enabled:
            return True
        if not token:
            return False
        data = {"secret": self.secret, "response": token}
        if remote_ip:
            data["remoteip"] = remote_ip
        try:
            response = self.session.post(self.verify_url, data=data, timeout=self.TIMEOUT)
            response.raise_for_status()
            return bool(response.json().get("success"))
        except (requests.RequestException, ValueError) as e:
            logger.warning("Captcha verification failed: %s", e)
            return False
