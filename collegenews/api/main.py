import time
import logging
from contextlib import asynccontextmanager
from datetime import timedelta
from typing import Optional
from urllib.parse import urlencode

from fastapi import FastAPI, Form, HTTPException, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.middleware.gzip import GZipMiddleware
from fastapi.responses import JSONResponse, RedirectResponse
from apscheduler.schedulers.background import BackgroundScheduler

from collegenews.errors import SendError, TokenError, ValidationError
from collegenews.feeds import CollegeNewsFeed, PageFetcher
from collegenews.notifier.mailer import SmtpMailer
from collegenews.notifier.news_notifier import Notifier
from collegenews.settings import Settings
from collegenews.storage.document_store import DocumentStore
from collegenews.storage.repository import NewsRepository, SubscriberRepository
from collegenews.subscriptions.lifecycle import SubscriptionManager
from collegenews.subscriptions.tokens import TokenSigner
from collegenews.subscriptions.validators import CaptchaVerifier, MxChecker
from collegenews.tracker.news_tracker import NewsTracker
from collegenews.utils.logging_config import configure_logging

logger = logging.getLogger(__name__)

INVALID_LINK_MESSAGE = "Invalid or expired link."

# Carrega variáveis do .env
settings = Settings.from_env()
configure_logging(settings.log_level)

if settings.token_secret == "change-me":
    logger.warning("TOKEN_SECRET não definido — usando segredo padrão (não use em produção).")

# Dependências explícitas: cada componente recebe o que usa
store = DocumentStore(settings.data_dir)
news_repo = NewsRepository(store)
subscriber_repo = SubscriberRepository(store)

signer = TokenSigner(
    settings.token_secret,
    verify_ttl=timedelta(minutes=settings.verify_token_minutes),
    unsubscribe_ttl=timedelta(days=settings.unsubscribe_token_days),
)
mailer = SmtpMailer.from_settings(settings)
notifier = Notifier.from_settings(settings, mailer=mailer, signer=signer)

feed = CollegeNewsFeed(
    settings.source_url,
    fetcher=PageFetcher(timeout=settings.fetch_timeout, fallback_proxy=settings.fallback_proxy),
    selector=settings.news_selector,
)
tracker = NewsTracker(feed, news_repo, subscriber_repo, notifier)
tracker.last_updated = int(time.time())

subscriptions = SubscriptionManager(
    subscribers=subscriber_repo,
    signer=signer,
    notifier=notifier,
    captcha=CaptchaVerifier(settings.recaptcha_secret),
    mx_checker=MxChecker() if settings.check_mx else None,
)

# Scheduler com configurações para evitar empilhamento de jobs
SCHEDULER_JOB_DEFAULTS = {
    "coalesce": True,         # junta execuções atrasadas
    "max_instances": 1,       # não roda dois ciclos ao mesmo tempo (o fan-out roda fora do job)
    "misfire_grace_time": 30, # 30s de tolerância
}
scheduler = BackgroundScheduler(job_defaults=SCHEDULER_JOB_DEFAULTS)


def check_for_new_news():
    """Job do scheduler: nunca levanta, o próximo tick é o retry."""
    try:
        result = tracker.run_cycle()
    except Exception:
        logger.exception("News cycle crashed")
        return None
    logger.debug("Cycle finished: %s", result.status.value)
    return result


@asynccontextmanager
async def lifespan(app: FastAPI):
    scheduler.add_job(check_for_new_news, "interval", seconds=settings.refresh_interval_seconds, id="check_news")
    scheduler.start()

    # Primeira execução imediata para aquecer dados
    check_for_new_news()

    yield
    scheduler.shutdown(wait=False)
    tracker.shutdown(wait_for_sends=False)


def _redirect_with_message(message: str) -> RedirectResponse:
    return RedirectResponse(url=f"/?{urlencode({'message': message})}", status_code=303)


#%% APP

app = FastAPI(lifespan=lifespan)

# Middleware
app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)
app.add_middleware(GZipMiddleware, minimum_size=512)

@app.get("/health")
def health():
    return {"status": "ok", "ts": int(time.time())}

@app.get("/last-update")
def last_update():
    resp = JSONResponse({"status": "success", "last_update": tracker.last_updated})
    resp.headers["Cache-Control"] = "public, max-age=5"
    return resp

@app.get("/")
def index(message: Optional[str] = None):
    items = news_repo.read_all()
    return {"status": "success", "message": message, "data": [n.model_dump() for n in items]}

@app.get("/api/news")
def api_news():
    items = news_repo.read_all()
    return {"status": "success", "data": [n.model_dump() for n in items]}

@app.get("/api/sends")
def api_subscribers():
    subs = subscriber_repo.list_all()
    return {"status": "success", "data": [s.model_dump(mode="json") for s in subs]}

# POST
@app.post("/subscribe")
def subscribe(
    request: Request,
    email: str = Form(...),
    captcha_token: Optional[str] = Form(None, alias="g-recaptcha-response"),
):
    remote_ip = request.client.host if request.client else None
    try:
        outcome = subscriptions.request_subscription(email, captcha_token=captcha_token, remote_ip=remote_ip)
    except ValidationError as e:
        raise HTTPException(400, str(e))
    except SendError as e:
        logger.error("Verification email failed for %s: %s", email, e)
        raise HTTPException(502, "Could not send the confirmation email. Please try again later.")
    return {"status": outcome.status.value, "message": outcome.message}

@app.get("/verify")
def verify(token: str = ""):
    try:
        outcome = subscriptions.verify(token)
    except TokenError as e:
        logger.info("Rejected verification token: %s", e)
        return _redirect_with_message(INVALID_LINK_MESSAGE)
    return _redirect_with_message(outcome.message)

@app.get("/unsubscribe")
def unsubscribe(token: str = ""):
    try:
        outcome = subscriptions.unsubscribe(token)
    except TokenError as e:
        logger.info("Rejected unsubscribe token: %s", e)
        return _redirect_with_message(INVALID_LINK_MESSAGE)
    return _redirect_with_message(outcome.message)

@app.post("/force-update")
def force_update():
    result = tracker.run_cycle()
    return {"status": result.status.value, "new_items": len(result.new_items), "error": result.error}

if __name__ == "__main__":
    import uvicorn
    uvicorn.run("collegenews.api.main:app", host="0.0.0.0", port=8000, reload=True)
