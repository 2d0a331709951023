from app.tasks.celery_app import celery
from app.tasks import worker_jobs

@celery.task(name="app.tasks.jobs.complete_past_bookings")
def complete_past_bookings():
    return worker_jobs.complete_past_bookings()

@celery.task(name="app.tasks.jobs.send_booking_notification", ignore_result=True)
def send_booking_notification(booking_id: str):
    return worker_jobs.send_booking_notification(booking_id)


@celery.task(name="app.tasks.jobs.process_email_queue")
def process_email_queue(limit: int = 50):
    return worker_jobs.process_email_queue(limit=limit)
