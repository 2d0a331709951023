from urllib.parse import urlparse, urlunparse, parse_qs, urlencode

from celery import Celery
from celery.signals import worker_ready
from app.core.config import settings


def _redis_url_for_celery(url: str) -> str:
    """Celery requires ssl_cert_reqs for rediss:// (e.g. Upstash TLS)."""
    if not url or not url.strip().lower().startswith("rediss://"):
        return url
    parsed = urlparse(url)
    qs = parse_qs(parsed.query)
    if "ssl_cert_reqs" not in qs:
        qs["ssl_cert_reqs"] = ["CERT_NONE"]
        new_query = urlencode(qs, doseq=True)
        return urlunparse(parsed._replace(query=new_query))
    return url


_redis_url = _redis_url_for_celery(settings.REDIS_URL)

celery = Celery(
    "questroom",
    broker=_redis_url,
    backend=_redis_url,
    include=["app.tasks.jobs"],
)

celery.conf.timezone = settings.TIME_ZONE
# an unreachable broker must not hold up the booking request that enqueues
celery.conf.task_publish_retry = False
celery.conf.broker_connection_timeout = settings.BROKER_CONNECT_TIMEOUT
celery.conf.broker_transport_options = {"socket_connect_timeout": settings.BROKER_CONNECT_TIMEOUT}
celery.conf.redis_socket_connect_timeout = settings.BROKER_CONNECT_TIMEOUT

# Close out bookings that ended while the worker was down
@worker_ready.connect
def on_worker_ready(sender, **kwargs):
    from app.tasks.jobs import complete_past_bookings
    complete_past_bookings.delay()

celery.conf.beat_schedule = {
    "complete-past-bookings": {
        "task": "app.tasks.jobs.complete_past_bookings",
        "schedule": 1800.0,
    },
    "process-email-queue-every-2-minutes": {
        "task": "app.tasks.jobs.process_email_queue",
        "schedule": 120.0,
        "kwargs": {"limit": 50},
    },
}
